"""
Test Suite for Evaluation Module
================================
"""

import json

import pytest

from croprec.evaluation import (
    accuracy,
    calculate_metrics,
    evaluate_model,
    plot_confusion_matrix,
)


class TestAccuracy:
    """Tests for the accuracy fraction."""

    def test_fraction(self):
        assert accuracy(['rice', 'maize', 'rice', 'rice'], ['rice', 'rice', 'rice', 'rice']) == 0.75

    def test_perfect(self):
        assert accuracy(['a', 'b'], ['a', 'b']) == 1.0

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="differ in length"):
            accuracy(['a'], ['a', 'b'])

    def test_empty(self):
        with pytest.raises(ValueError):
            accuracy([], [])


class TestCalculateMetrics:
    """Tests for calculate_metrics."""

    @pytest.fixture
    def metrics(self):
        truth = ['rice', 'rice', 'maize', 'maize', 'coffee']
        predictions = ['rice', 'maize', 'maize', 'maize', 'rice']
        return calculate_metrics(predictions, truth)

    def test_accuracy_and_labels(self, metrics):
        assert metrics['accuracy'] == pytest.approx(0.6)
        assert metrics['n_samples'] == 5
        assert metrics['labels'] == ['rice', 'maize', 'coffee']

    def test_confusion_matrix(self, metrics):
        confusion = metrics['confusion_matrix']

        assert confusion['rice'] == {'rice': 1, 'maize': 1, 'coffee': 0}
        assert confusion['maize'] == {'rice': 0, 'maize': 2, 'coffee': 0}
        assert confusion['coffee'] == {'rice': 1, 'maize': 0, 'coffee': 0}

    def test_class_report(self, metrics):
        maize = metrics['class_report']['maize']

        assert maize['precision'] == pytest.approx(2 / 3)
        assert maize['recall'] == pytest.approx(1.0)
        assert maize['support'] == 2
        # Never predicted: zero instead of a division warning
        assert metrics['class_report']['coffee']['precision'] == 0.0

    def test_metrics_are_json_serializable(self, metrics):
        assert json.loads(json.dumps(metrics))['accuracy'] == pytest.approx(0.6)

    def test_plot_confusion_matrix(self, metrics, tmp_path):
        path = tmp_path / "cm.png"
        fig = plot_confusion_matrix(metrics, save_path=str(path))

        assert fig is not None
        assert path.exists()


class TestEvaluateModel:
    """Tests for the full evaluation report."""

    def test_writes_metrics_and_figures(self, trained_result, tmp_path):
        evaluation = evaluate_model(trained_result, output_dir=str(tmp_path))

        metrics_file = tmp_path / "metrics" / "evaluation_metrics.json"
        assert metrics_file.exists()
        assert json.loads(metrics_file.read_text())['n_samples'] == 20
        assert evaluation['metrics']['accuracy'] == pytest.approx(trained_result.accuracy)

        for name in evaluation['figures']:
            assert (tmp_path / "figures" / name).exists()

    def test_empty_test_split(self, trained_result, tmp_path):
        trained_result.test_labels = []
        trained_result.test_predictions = []

        with pytest.raises(ValueError, match="empty test split"):
            evaluate_model(trained_result, output_dir=str(tmp_path))
