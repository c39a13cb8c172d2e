"""
Crop Recommendation Pipeline
============================

A machine learning pipeline that turns tabular agronomic measurements into a
trained crop classifier and serves recommendations from it.

Modules:
    - data_loader: CSV ingestion, schema validation and quality statistics
    - eda: Exploratory charts for the agronomic dataset
    - preprocessing: Label encoding, feature scaling and train/test splitting
    - model: Random Forest classifier with vote-share confidence
    - training: End-to-end training run
    - evaluation: Accuracy, confusion matrix and per-class metrics
    - storage: Persistence of the single current model artifact
    - prediction: Single and batch inference
"""

__version__ = "1.0.0"
__author__ = "Crop Recommendation Team"
