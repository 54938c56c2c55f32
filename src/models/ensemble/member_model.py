"""
Modelos Miembro del Ensemble
============================

Contrato que cualquier modelo base debe cumplir para participar en el
ensemble (initialize / train / predict) y una implementación de
referencia basada en scikit-learn.
"""

import time
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional

import numpy as np
from sklearn.ensemble import GradientBoostingRegressor, RandomForestRegressor
from sklearn.linear_model import Ridge
from sklearn.neural_network import MLPRegressor
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from config.logging_config import configure_model_logging
from .ensemble_config import MemberModelConfig
from .evaluation import tolerance_accuracy
from .exceptions import MemberModelError, ValidationError
from .feature_mapping_utils import (
    FEATURE_SCHEMA, N_FEATURES, features_to_array, describe_feature
)
from .prediction_types import (
    PredictionRequest, PredictionResponse, PredictionFactor,
    IMPACT_NEGATIVE, IMPACT_POSITIVE, now_ms, expiry_for, round_half_up
)


class BaseMemberModel(ABC):
    """
    Contrato de un modelo miembro.

    Ciclo de vida: uninitialized -> initialized -> trained.
    """

    def __init__(self, config: MemberModelConfig):
        self.config = config
        self.is_initialized = False
        self.is_trained = False

    @property
    def model_id(self) -> str:
        return self.config.model_id

    @abstractmethod
    def initialize(self) -> None:
        """Preparar la instancia para su configuración"""

    @abstractmethod
    def train(self, features: np.ndarray, labels: np.ndarray,
              validation_data: Optional[Dict[str, np.ndarray]] = None) -> Dict[str, Any]:
        """Entrenar in-place sobre las filas dadas"""

    @abstractmethod
    def predict(self, request: PredictionRequest) -> PredictionResponse:
        """Predecir riesgo 0-1000 para una solicitud"""


class SklearnRiskModel(BaseMemberModel):
    """
    Modelo miembro de referencia: StandardScaler + regresor de scikit-learn.

    El regresor se elige con architecture['type'] y recibe
    config.hyperparameters como argumentos.
    """

    ESTIMATORS = {
        'GradientBoosting': GradientBoostingRegressor,
        'RandomForest': RandomForestRegressor,
        'Ridge': Ridge,
        'MLP': MLPRegressor,
    }

    MAX_FACTORS = 5
    ACCURACY_TOLERANCE = 0.15

    def __init__(self, config: MemberModelConfig):
        super().__init__(config)
        self.pipeline: Optional[Pipeline] = None
        self.logger = configure_model_logging(config.model_id)
        self._validate_config()

    def _validate_config(self):
        architecture_type = (self.config.architecture or {}).get('type')
        if architecture_type not in self.ESTIMATORS:
            raise ValidationError(f"Unsupported architecture type: {architecture_type}",
                                  field='architecture', actual_value=architecture_type)

    def initialize(self) -> None:
        try:
            estimator_class = self.ESTIMATORS[self.config.architecture['type']]
            estimator = estimator_class(**self.config.hyperparameters)
        except TypeError as e:
            raise MemberModelError(f"Failed to initialize model: {e}", self.model_id) from e

        self.pipeline = Pipeline([
            ('scaler', StandardScaler()),
            ('regressor', estimator)
        ])
        self.is_initialized = True
        self.is_trained = False
        self.logger.debug(f"Modelo {self.model_id} inicializado ({estimator_class.__name__})")

    def train(self, features: np.ndarray, labels: np.ndarray,
              validation_data: Optional[Dict[str, np.ndarray]] = None) -> Dict[str, Any]:
        if not self.is_initialized:
            self.initialize()

        X = np.asarray(features, dtype=float)
        y = np.asarray(labels, dtype=float)
        if X.ndim != 2 or X.shape[1] != N_FEATURES:
            raise MemberModelError(f"Expected rows with {N_FEATURES} features, got shape {X.shape}",
                                   self.model_id)
        if len(X) == 0 or len(X) != len(y):
            raise MemberModelError("Training rows and labels must be non-empty and aligned",
                                   self.model_id)

        job_id = f"training_{self.model_id}_{now_ms()}"
        start_time = time.time()

        try:
            self.pipeline.fit(X, y)
        except ValueError as e:
            raise MemberModelError(f"Training failed: {e}", self.model_id) from e

        if validation_data is not None and len(validation_data['inputs']) > 0:
            X_eval = np.asarray(validation_data['inputs'], dtype=float)
            y_eval = np.asarray(validation_data['labels'], dtype=float)
        else:
            X_eval, y_eval = X, y

        y_pred = np.clip(self.pipeline.predict(X_eval), 0, 1000)
        accuracy = float(tolerance_accuracy(y_pred, y_eval, self.ACCURACY_TOLERANCE))
        loss = float(np.mean((y_pred - y_eval) ** 2))

        self.config.performance.accuracy = accuracy
        self.config.performance.mse = loss
        self.config.performance.mae = float(np.mean(np.abs(y_pred - y_eval)))
        self.config.last_trained = now_ms()
        self.is_trained = True

        duration = time.time() - start_time
        self.logger.debug(f"Modelo {self.model_id} entrenado en {duration:.2f}s | accuracy={accuracy:.3f}")

        return {
            'job_id': job_id,
            'model_id': self.model_id,
            'status': 'completed',
            'duration_seconds': duration,
            'metrics': {
                'loss': loss,
                'accuracy': accuracy,
                'n_samples': int(len(X))
            }
        }

    def predict(self, request: PredictionRequest) -> PredictionResponse:
        if not self.is_initialized:
            raise MemberModelError('Model not initialized', self.model_id)
        if not self.is_trained:
            raise MemberModelError('Model not trained', self.model_id)

        features = features_to_array(request.features)
        risk_score = float(np.clip(self.pipeline.predict(features.reshape(1, -1))[0], 0, 1000))
        confidence = self._calculate_prediction_confidence(features, risk_score)
        timestamp = now_ms()

        return PredictionResponse(
            subject_id=request.subject_id,
            model_id=request.model_id,
            prediction=round_half_up(risk_score),
            confidence=round_half_up(confidence),
            factors=self._generate_prediction_factors(features),
            timestamp=timestamp,
            expires_at=expiry_for(timestamp, request.prediction_horizon)
        )

    def _calculate_prediction_confidence(self, features: np.ndarray, prediction: float) -> float:
        """Confianza según rendimiento del modelo y calidad de los datos"""
        confidence = self.config.performance.accuracy * 100

        # Completitud de features
        completeness = np.count_nonzero(features) / len(features)
        confidence *= completeness

        # Predicciones cercanas a los extremos son más seguras
        certainty = abs(prediction - 500) / 500
        confidence *= (0.7 + 0.3 * certainty)

        return max(0.0, min(100.0, confidence))

    def _generate_prediction_factors(self, features: np.ndarray) -> List[PredictionFactor]:
        factors = []
        for feature_field, value in zip(FEATURE_SCHEMA, features):
            importance = abs(value) / 1000
            if importance > 0.1:
                factors.append(PredictionFactor(
                    feature=feature_field.display_name,
                    importance=round_half_up(min(100.0, importance * 100)),
                    value=float(value),
                    impact=IMPACT_NEGATIVE if value > 500 else IMPACT_POSITIVE,
                    description=describe_feature(feature_field.key, float(value))
                ))

        factors.sort(key=lambda f: f.importance, reverse=True)
        return factors[:self.MAX_FACTORS]
