"""
Métodos de Combinación del Ensemble
===================================

Reducción de las predicciones individuales a una predicción del ensemble:
- weighted_average: media ponderada por los pesos del ensemble
- voting: voto mayoritario por categoría de riesgo
- stacking: media ponderada por la confianza de cada modelo

Incluye la agregación de factores explicativos por consenso.
"""

import math
from typing import Dict, List, Sequence, Tuple

import numpy as np

from .ensemble_config import WEIGHTED_AVERAGE, VOTING, STACKING
from .exceptions import ValidationError
from .prediction_types import PredictionResponse, PredictionFactor, round_half_up

# Orden de enumeración de categorías (importa para empates)
RISK_CATEGORIES = ('low', 'medium', 'high')
CATEGORY_PREDICTIONS = {'low': 200, 'medium': 450, 'high': 750}


def categorize_risk(prediction: float) -> str:
    if prediction < 300:
        return 'low'
    if prediction < 600:
        return 'medium'
    return 'high'


def weighted_average_combining(predictions: Sequence[PredictionResponse],
                               weights: Sequence[float]) -> Tuple[int, int]:
    """Media ponderada de predicción y confianza"""
    if len(predictions) != len(weights):
        raise ValidationError('Predictions must match weights length', field='weights_length')

    weighted_prediction = 0.0
    weighted_confidence = 0.0
    total_weight = 0.0

    for prediction, weight in zip(predictions, weights):
        weighted_prediction += prediction.prediction * weight
        weighted_confidence += prediction.confidence * weight
        total_weight += weight

    return (round_half_up(weighted_prediction / total_weight),
            round_half_up(weighted_confidence / total_weight))


def voting_combining(predictions: Sequence[PredictionResponse]) -> Tuple[int, int]:
    """
    Voto mayoritario sobre categorías de riesgo.

    En empate gana la categoría posterior en RISK_CATEGORIES.
    """
    votes = {category: 0 for category in RISK_CATEGORIES}
    for prediction in predictions:
        votes[categorize_risk(prediction.prediction)] += 1

    majority_category = RISK_CATEGORIES[0]
    for category in RISK_CATEGORIES[1:]:
        if votes[category] >= votes[majority_category]:
            majority_category = category

    confidence = votes[majority_category] / len(predictions) * 100
    return CATEGORY_PREDICTIONS[majority_category], round_half_up(confidence)


def stacking_combining(predictions: Sequence[PredictionResponse]) -> Tuple[int, int]:
    """
    Stacking simplificado: cada predicción pondera por su confianza.

    La confianza del ensemble mide el acuerdo entre modelos.
    """
    values = np.array([p.prediction for p in predictions], dtype=float)
    confidence_weights = np.array([p.confidence for p in predictions], dtype=float) / 100

    total_confidence_weight = confidence_weights.sum()
    if total_confidence_weight > 0:
        final_prediction = float(np.sum(values * confidence_weights) / total_confidence_weight)
    else:
        final_prediction = float(values.mean())

    # Varianza poblacional respecto a la media simple
    variance = float(np.mean((values - values.mean()) ** 2))
    agreement = max(0.0, 100 - math.sqrt(variance) / 10)

    return round_half_up(final_prediction), round_half_up(agreement)


def combine_predictions(method: str, predictions: Sequence[PredictionResponse],
                        weights: Sequence[float]) -> Tuple[int, int]:
    """
    Combinar predicciones según el método del ensemble

    Returns:
        Tuple (prediction, confidence)
    """
    if not predictions:
        raise ValidationError('At least one member prediction is required', field='predictions')

    if method == WEIGHTED_AVERAGE:
        return weighted_average_combining(predictions, weights)
    if method == VOTING:
        return voting_combining(predictions)
    if method == STACKING:
        return stacking_combining(predictions)

    raise ValidationError(f"Unsupported combining method: {method}",
                          field='combining_method', actual_value=method)


def combine_factors(predictions: Sequence[PredictionResponse],
                    max_factors: int = 8) -> List[PredictionFactor]:
    """
    Fusionar los factores de todos los modelos por nombre de feature

    - importance: media de las importancias
    - value: el del último modelo procesado
    - impact: el de la primera aparición
    """
    factor_map: Dict[str, dict] = {}

    for prediction in predictions:
        for factor in prediction.factors:
            existing = factor_map.get(factor.feature)
            if existing:
                existing['importance'] += factor.importance
                existing['count'] += 1
                existing['value'] = factor.value
            else:
                factor_map[factor.feature] = {
                    'importance': factor.importance,
                    'count': 1,
                    'impact': factor.impact,
                    'value': factor.value
                }

    combined_factors = [
        PredictionFactor(
            feature=feature,
            importance=round_half_up(data['importance'] / data['count']),
            value=data['value'],
            impact=data['impact'],
            description=f"Consensus factor from {data['count']} models"
        )
        for feature, data in factor_map.items()
    ]

    combined_factors.sort(key=lambda f: f.importance, reverse=True)
    return combined_factors[:max_factors]
