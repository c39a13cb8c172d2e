"""
Test Suite for Data Loader Module
=================================

Tests for CSV parsing, schema checks, row discarding and statistics.
"""

import pytest
import numpy as np

from croprec.data_loader import (
    FEATURE_COLUMNS,
    TOO_MANY_FIELDS,
    RowIssue,
    load_config,
    load_dataset,
    parse_csv_text,
    resolve_columns,
    validate_dataset,
)
from croprec.exceptions import EmptyDatasetError, SchemaError

HEADER = "N,P,K,temperature,humidity,ph,rainfall,label"


def _csv(*rows):
    return "\n".join([HEADER] + list(rows)) + "\n"


class TestResolveColumns:
    """Tests for header matching."""

    def test_exact_header(self):
        mapping = resolve_columns(HEADER.split(","))
        assert mapping == {col: col for col in FEATURE_COLUMNS + ['label']}

    def test_case_and_alias_variants(self):
        header = [" Nitrogen ", "p", "Potassium", "Temp", "HUMIDITY", "pH", "rainfall", "Crop"]
        mapping = resolve_columns(header)

        assert mapping['N'] == " Nitrogen "
        assert mapping['ph'] == "pH"
        assert mapping['label'] == "Crop"

    def test_exact_name_preferred_over_alias(self):
        header = HEADER.split(",") + ["crop"]
        assert resolve_columns(header)['label'] == "label"

    def test_missing_columns(self):
        with pytest.raises(SchemaError, match="Missing required columns") as exc_info:
            resolve_columns(["N", "P", "K", "label"])

        assert exc_info.value.missing_columns == ['temperature', 'humidity', 'ph', 'rainfall']


class TestParseDataset:
    """Tests for row validation and statistics."""

    def test_valid_rows(self):
        dataset = parse_csv_text(_csv(
            "90,42,43,20.8,82.0,6.5,202.9,rice",
            "85,58,41,21.7,80.3,7.0,226.6,rice",
            "40,72,77,17.0,16.9,7.4,88.5,chickpea",
        ))

        assert len(dataset) == 3
        assert dataset.features.shape == (3, 7)
        assert dataset.labels == ('rice', 'rice', 'chickpea')
        assert dataset.stats.label_distribution == {'rice': 2, 'chickpea': 1}
        assert list(dataset.stats.label_distribution) == ['rice', 'chickpea']

    def test_header_whitespace_and_reordered_columns(self):
        text = " label , rainfall,ph,humidity,temperature,K,P,N\nrice,202.9,6.5,82.0,20.8,43,42,90\n"
        dataset = parse_csv_text(text)

        np.testing.assert_array_equal(dataset.features[0], [90, 42, 43, 20.8, 82.0, 6.5, 202.9])

    def test_discards_row_with_non_numeric_value(self):
        dataset = parse_csv_text(_csv(
            "90,42,43,20.8,82.0,6.5,202.9,rice",
            "85,abc,41,21.7,80.3,7.0,226.6,rice",
            "40,72,77,17.0,16.9,7.4,88.5,chickpea",
        ))
        stats = dataset.stats

        assert stats.total_rows == 3
        assert stats.valid_rows == stats.total_rows - 1
        assert stats.invalid_rows == 1
        assert stats.missing_values['P'] == 1
        assert sum(stats.missing_values.values()) == 1
        assert stats.discarded_rows[0].row == 2
        assert stats.discarded_rows[0].column == 'P'

    @pytest.mark.parametrize("cell", ["", "NaN", "null", "nan", "inf", "  "])
    def test_missing_cells(self, cell):
        dataset = parse_csv_text(_csv(
            "90,42,43,20.8,82.0,6.5,202.9,rice",
            f"85,58,41,21.7,{cell},7.0,226.6,rice",
        ))

        assert dataset.stats.valid_rows == 1
        assert dataset.stats.missing_values['humidity'] == 1

    def test_every_failing_field_is_counted(self):
        dataset = parse_csv_text(_csv(
            "90,42,43,20.8,82.0,6.5,202.9,rice",
            ",x,43,20.8,82.0,6.5,,rice",
        ))

        assert dataset.stats.invalid_rows == 1
        assert dataset.stats.missing_values['N'] == 1
        assert dataset.stats.missing_values['P'] == 1
        assert dataset.stats.missing_values['rainfall'] == 1

    def test_empty_label_discards_row(self):
        dataset = parse_csv_text(_csv(
            "90,42,43,20.8,82.0,6.5,202.9,rice",
            "85,58,41,21.7,80.3,7.0,226.6,  ",
        ))

        assert dataset.stats.valid_rows == 1
        assert dataset.stats.invalid_rows == 1
        assert sum(dataset.stats.missing_values.values()) == 0
        assert dataset.stats.discarded_rows[0].column == 'label'

    def test_short_row_is_discarded(self):
        dataset = parse_csv_text(_csv(
            "90,42,43,20.8,82.0,6.5,202.9,rice",
            "85,58,41",
        ))

        assert dataset.stats.valid_rows == 1
        assert dataset.stats.invalid_rows == 1

    def test_row_with_extra_field_is_discarded(self):
        dataset = parse_csv_text(_csv(
            "90,42,43,20.8,82.0,6.5,202.9,rice",
            "85,58,41,21.7,80.3,7.0,226.6,rice,extra",
            "40,72,77,17.0,16.9,7.4,88.5,chickpea",
        ))

        assert dataset.stats.total_rows == 3
        assert dataset.stats.valid_rows == 2
        assert dataset.stats.invalid_rows == 1
        assert dataset.stats.discarded_rows[0] == RowIssue(2, '*', TOO_MANY_FIELDS)
        assert dataset.labels == ('rice', 'chickpea')

    def test_extra_field_on_first_row_keeps_columns_aligned(self):
        dataset = parse_csv_text(_csv(
            "90,42,43,20.8,82.0,6.5,202.9,rice,extra",
            "85,58,41,21.7,80.3,7.0,226.6,rice",
            "40,72,77,17.0,16.9,7.4,88.5,chickpea",
        ))

        assert dataset.stats.total_rows == 3
        assert dataset.stats.valid_rows == 2
        assert [issue.row for issue in dataset.stats.discarded_rows] == [1]
        assert dataset.stats.discarded_rows[0].column == '*'
        assert dataset.features[0].tolist() == [85, 58, 41, 21.7, 80.3, 7.0, 226.6]

    def test_population_statistics(self):
        dataset = parse_csv_text(_csv(
            "1,0,0,0,0,0,0,a",
            "3,0,0,0,0,0,0,a",
            "bad,0,0,0,0,0,0,a",
        ))
        n_stats = dataset.stats.feature_stats['N']

        assert n_stats['min'] == 1.0
        assert n_stats['max'] == 3.0
        assert n_stats['mean'] == 2.0
        # Population std of [1, 3] is 1 (sample std would be ~1.414)
        assert n_stats['std'] == pytest.approx(1.0)

    def test_no_valid_rows(self):
        with pytest.raises(EmptyDatasetError, match="No valid rows") as exc_info:
            parse_csv_text(_csv("x,42,43,20.8,82.0,6.5,202.9,rice"))

        assert exc_info.value.stats.invalid_rows == 1

    def test_header_only(self):
        with pytest.raises(EmptyDatasetError):
            parse_csv_text(HEADER + "\n")

    def test_missing_column_is_schema_error(self):
        with pytest.raises(SchemaError, match="rainfall"):
            parse_csv_text("N,P,K,temperature,humidity,ph,label\n1,2,3,4,5,6,rice\n")

    def test_features_are_read_only(self):
        dataset = parse_csv_text(_csv("90,42,43,20.8,82.0,6.5,202.9,rice"))

        with pytest.raises(ValueError):
            dataset.features[0, 0] = 1.0

    def test_to_frame(self):
        dataset = parse_csv_text(_csv("90,42,43,20.8,82.0,6.5,202.9,rice"))
        df = dataset.to_frame()

        assert list(df.columns) == FEATURE_COLUMNS + ['label']
        assert df.loc[0, 'label'] == 'rice'


class TestLoadDataset:
    """Tests for file loading and quality validation."""

    def test_load_dataset(self, crop_csv):
        dataset = load_dataset(crop_csv)

        assert len(dataset) == 100
        assert set(dataset.stats.label_distribution) == {'rice', 'chickpea', 'coffee'}
        assert sorted(dataset.stats.label_distribution.values()) == [33, 33, 34]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_dataset(tmp_path / "missing.csv")

    def test_validate_clean_dataset(self, crop_dataset):
        is_valid, report = validate_dataset(crop_dataset)

        assert is_valid
        assert report['valid_rows'] == 100
        assert report['n_labels'] == 3

    def test_validate_reports_discarded_and_duplicates(self):
        dataset = parse_csv_text(_csv(
            "90,42,43,20.8,82.0,6.5,202.9,rice",
            "90,42,43,20.8,82.0,6.5,202.9,rice",
            "90,42,43,20.8,,6.5,202.9,rice",
        ))
        is_valid, report = validate_dataset(dataset)

        assert not is_valid
        assert any("Discarded rows" in issue for issue in report['issues'])
        assert any("Duplicate rows" in issue for issue in report['issues'])
        assert report['missing_by_column'] == {'humidity': 1}

    def test_validate_strict_raises(self):
        dataset = parse_csv_text(_csv(
            "90,42,43,20.8,82.0,6.5,202.9,rice",
            "90,42,43,20.8,82.0,6.5,202.9,rice",
        ))

        with pytest.raises(SchemaError, match="validation failed"):
            validate_dataset(dataset, strict=True)


class TestLoadConfig:
    """Tests for YAML configuration loading."""

    def test_load_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("training:\n  test_split: 0.3\n  random_seed: 7\n")

        config = load_config(str(path))

        assert config['training']['test_split'] == 0.3
        assert config['training']['random_seed'] == 7

    def test_missing_config(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_repository_config(self):
        from pathlib import Path
        config = load_config(str(Path(__file__).parent.parent / "config" / "config.yaml"))

        assert config['training']['n_estimators'] == 100
        assert config['storage']['storage_key'] == 'crop_model'
