#!/usr/bin/env python3
"""
Crop Recommendation Pipeline - Main Entry Point
================================================

Orchestrates dataset validation, training, evaluation, persistence and
prediction for the crop recommendation model.

Phases:
    eda       - Exploratory charts of the dataset
    train     - Train and persist the model
    evaluate  - Train, then write metrics and evaluation figures
    predict   - Recommend a crop for one JSON input
    batch     - Predict every row of a CSV file
    status    - Show the stored model status
    delete    - Remove the stored model (rollback)
    all       - eda + train + evaluate

Usage:
    # Train and evaluate
    python main.py --data data/raw/Crop_recommendation.csv

    # Single prediction
    python main.py --phase predict --input '{"N": 90, "P": 42, "K": 43, "temperature": 20.8,
                                             "humidity": 82.0, "ph": 6.5, "rainfall": 202.9}'

    # Batch prediction
    python main.py --phase batch --input data/raw/new_samples.csv
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional

import pandas as pd

from croprec.data_loader import load_config, load_dataset, validate_dataset, print_data_summary
from croprec.eda import generate_eda_report, print_correlation_insights
from croprec.evaluation import evaluate_model, print_evaluation_report
from croprec.exceptions import CropPipelineError, ModelNotTrainedError
from croprec.model import print_model_summary
from croprec.prediction import (
    PredictionService,
    export_predictions,
    print_batch_results,
    print_prediction_result,
)
from croprec.storage import ModelStore, print_model_status
from croprec.training import TrainingResult, run_training, print_training_summary

PHASES = ['eda', 'train', 'evaluate', 'predict', 'batch', 'status', 'delete', 'all']


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')
        ]
    )


def _data_path(args: argparse.Namespace, config: Dict[str, Any]) -> str:
    return args.data or config.get('data', {}).get('dataset_path', 'data/raw/Crop_recommendation.csv')


def run_eda(data_path: str, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute exploratory analysis of the dataset.

    Args:
        data_path: Path to the dataset CSV
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    print("\n" + "=" * 70)
    print("EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    dataset = load_dataset(data_path)
    print_data_summary(dataset)
    validate_dataset(dataset, strict=False)

    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')
    report = generate_eda_report(dataset, output_dir=output_dir, show_plots=False)

    print_correlation_insights(pd.DataFrame(report["correlation_matrix"]))

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")
    return report


def run_train(
    data_path: str,
    config: Dict[str, Any],
    store: ModelStore,
    random_seed: Optional[int] = None
) -> TrainingResult:
    """
    Train on the dataset and persist the artifact.

    Args:
        data_path: Path to the dataset CSV
        config: Configuration dictionary
        store: Model store receiving the artifact
        random_seed: Overrides training.random_seed when given

    Returns:
        TrainingResult
    """
    print("\n" + "=" * 70)
    print("MODEL TRAINING")
    print("=" * 70)

    dataset = load_dataset(data_path)
    print_data_summary(dataset)

    is_valid, _ = validate_dataset(dataset, strict=False)
    if not is_valid:
        print("⚠️  Data validation warnings detected. Proceeding anyway...")

    result = run_training(dataset, config, random_seed=random_seed)
    print_model_summary(result.model)
    print_training_summary(result)

    artifact = store.save(result)
    print(f"✓ Model saved as {artifact['metadata']['model_version']} ({store.path})")
    return result


def run_evaluate(result: TrainingResult, config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Write metrics and figures for a training run.

    Args:
        result: TrainingResult from run_train
        config: Configuration dictionary

    Returns:
        Evaluation result dictionary, or None when the test split is empty
    """
    print("\n" + "=" * 70)
    print("MODEL EVALUATION")
    print("=" * 70)

    if not result.test_labels:
        print("⚠️  Test split is empty; skipping evaluation.")
        return None

    output_dir = config.get('output', {}).get('reports_path', 'reports/')
    evaluation = evaluate_model(result, output_dir=output_dir, show_plots=False)
    print_evaluation_report(evaluation['metrics'])
    return evaluation


def run_predict(raw_input: str, service: PredictionService) -> Dict[str, Any]:
    """
    Recommend a crop for a JSON object (or a path to a JSON file).

    Args:
        raw_input: JSON text or path to a JSON file
        service: Prediction service

    Returns:
        Prediction dictionary
    """
    path = Path(raw_input)
    text = path.read_text(encoding='utf-8') if path.suffix == '.json' and path.exists() else raw_input
    values = json.loads(text)

    result = service.predict_one(values)
    print_prediction_result(result)
    return result.to_dict()


def run_batch(input_path: str, config: Dict[str, Any], service: PredictionService) -> Dict[str, Any]:
    """
    Predict every row of a CSV file and export the results.

    Args:
        input_path: CSV file with the seven measurement columns
        config: Configuration dictionary
        service: Prediction service

    Returns:
        Batch result dictionary with the export path
    """
    batch = service.predict_csv(input_path)
    print_batch_results(batch)

    output_dir = config.get('data', {}).get('predictions_path', 'data/predictions/')
    result = batch.to_dict()
    if batch.predictions:
        result['csv_path'] = export_predictions(batch, output_dir)
        print(f"Predictions exported to: {result['csv_path']}")
    return result


def run_pipeline(args: argparse.Namespace) -> int:
    """
    Execute the requested phase.

    Args:
        args: Parsed command line arguments

    Returns:
        Process exit code
    """
    config = load_config(args.config)
    level = 'DEBUG' if args.verbose else config.get('logging', {}).get('level', 'INFO')
    setup_logging(level)

    store = ModelStore.from_config(config)
    service = PredictionService(store)
    data_path = _data_path(args, config)

    if args.phase in ('eda', 'train', 'evaluate', 'all') and not Path(data_path).exists():
        print(f"Error: Data file not found: {data_path}")
        print("Expected format: CSV with columns N,P,K,temperature,humidity,ph,rainfall,label")
        return 1

    if args.phase == 'eda':
        run_eda(data_path, config)

    elif args.phase == 'train':
        run_train(data_path, config, store, args.seed)

    elif args.phase == 'evaluate':
        result = run_train(data_path, config, store, args.seed)
        run_evaluate(result, config)

    elif args.phase == 'all':
        run_eda(data_path, config)
        result = run_train(data_path, config, store, args.seed)
        run_evaluate(result, config)

    elif args.phase == 'predict':
        if not args.input:
            print("Error: --input with a JSON object is required for the predict phase")
            return 1
        run_predict(args.input, service)

    elif args.phase == 'batch':
        if not args.input:
            print("Error: --input with a CSV path is required for the batch phase")
            return 1
        run_batch(args.input, config, service)

    elif args.phase == 'status':
        print_model_status(store.status())

    elif args.phase == 'delete':
        removed = store.delete()
        print("✓ Model deleted." if removed else "No stored model to delete.")

    return 0


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Crop Recommendation Pipeline (Random Forest)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --data data/raw/Crop_recommendation.csv
  python main.py --phase train --seed 7
  python main.py --phase predict --input sample.json
  python main.py --phase batch --input data/raw/new_samples.csv
  python main.py --phase status

Splits and forests are reproducible only with a seed (training.random_seed
in the config or --seed); with random_seed set to null, runs differ.
        """
    )

    parser.add_argument(
        '--data', '-d',
        type=str,
        default=None,
        help='Path to the training CSV (default: data.dataset_path from the config)'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=PHASES,
        default='all',
        help='Phase to run (default: all)'
    )

    parser.add_argument(
        '--input', '-i',
        type=str,
        default=None,
        help='JSON object or .json file for predict; CSV file for batch'
    )

    parser.add_argument(
        '--seed', '-s',
        type=int,
        default=None,
        help='Random seed for the split and the forest'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args()

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        return 1

    try:
        return run_pipeline(args)

    except ModelNotTrainedError as e:
        logging.error(f"Prediction failed: {e}")
        print(f"\n❌ {e} Run: python main.py --phase train")
        return 2

    except CropPipelineError as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1

    except Exception as e:
        logging.error(f"Unexpected failure: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
