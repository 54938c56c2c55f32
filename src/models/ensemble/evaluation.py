"""
Evaluación de Rendimiento del Ensemble
"""

import math
from typing import Sequence

import numpy as np
from sklearn.metrics import mean_squared_error, precision_score, recall_score, f1_score

from .ensemble_config import ModelPerformance
from .exceptions import ValidationError


def tolerance_accuracy(predictions: np.ndarray, targets: np.ndarray,
                       tolerance: float = 0.15) -> float:
    """
    Fracción de filas con |pred - target| / target < tolerancia

    Filas con target 0 nunca cuentan como acierto.
    """
    with np.errstate(divide='ignore', invalid='ignore'):
        relative_error = np.abs(predictions - targets) / targets
    hits = np.count_nonzero(relative_error < tolerance)
    return hits / len(targets)


def compute_performance(predictions: Sequence[float], targets: Sequence[float],
                        tolerance: float = 0.15,
                        positive_threshold: float = 500.0) -> ModelPerformance:
    """
    Calcular el snapshot de rendimiento del ensemble.

    Notas:
        mae se reporta como sqrt(mse) y auc como 0.5 + |accuracy - 0.5|;
        ambas son aproximaciones heredadas y se conservan tal cual.

    Args:
        predictions: Predicciones del ensemble (escala 0-1000)
        targets: Valores reales (escala 0-1000)
        tolerance: Error relativo máximo para contar acierto
        positive_threshold: Score por encima del cual se considera alto riesgo

    Returns:
        ModelPerformance con métricas de validación/test vacías
    """
    y_pred = np.asarray(predictions, dtype=float)
    y_true = np.asarray(targets, dtype=float)

    if len(y_true) == 0:
        raise ValidationError('Evaluation requires at least one labeled row', field='labels')
    if len(y_pred) != len(y_true):
        raise ValidationError('Predictions must match labels length', field='labels_length')

    mse = float(mean_squared_error(y_true, y_pred))
    accuracy = float(tolerance_accuracy(y_pred, y_true, tolerance))

    is_high_risk = (y_true > positive_threshold).astype(int)
    predicted_high_risk = (y_pred > positive_threshold).astype(int)

    binary_kwargs = dict(labels=[0, 1], pos_label=1, average='binary', zero_division=0)
    precision = float(precision_score(is_high_risk, predicted_high_risk, **binary_kwargs))
    recall = float(recall_score(is_high_risk, predicted_high_risk, **binary_kwargs))
    f1 = float(f1_score(is_high_risk, predicted_high_risk, **binary_kwargs))

    return ModelPerformance(
        accuracy=accuracy,
        precision=precision,
        recall=recall,
        f1_score=f1,
        auc=0.5 + abs(accuracy - 0.5),
        mse=mse,
        mae=math.sqrt(mse),
        validation_metrics={},
        test_metrics={}
    )
