"""
Configuración del Ensemble de Riesgo
====================================

Configuración centralizada para el ensemble de riesgo crediticio con:
- Identificadores y pesos de los modelos miembro
- Método de combinación (weighted_average, voting, stacking)
- Validación de invariantes (los pesos siempre suman 1)
- Parámetros de ejecución (bootstrap, tolerancias, paralelismo)
"""

import copy
import math
import numbers
from dataclasses import dataclass, field, fields, asdict
from typing import Dict, List, Optional, Any

from .exceptions import ValidationError


WEIGHTED_AVERAGE = 'weighted_average'
VOTING = 'voting'
STACKING = 'stacking'

VALID_COMBINING_METHODS = (WEIGHTED_AVERAGE, VOTING, STACKING)

DEFAULT_MEMBER_MODULE = 'src.models.ensemble.member_model'
DEFAULT_MEMBER_CLASS = 'SklearnRiskModel'


@dataclass
class ModelPerformance:
    """Snapshot de métricas de rendimiento"""
    accuracy: float = 0.0
    precision: float = 0.0
    recall: float = 0.0
    f1_score: float = 0.0
    auc: float = 0.0
    mse: Optional[float] = None
    mae: Optional[float] = None
    validation_metrics: Dict[str, float] = field(default_factory=dict)
    test_metrics: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ModelPerformance':
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class EnsembleSettings:
    """Parámetros de ejecución del ensemble"""
    bootstrap_fraction: float = 0.8
    weight_tolerance: float = 0.001
    accuracy_tolerance: float = 0.15  # Error relativo máximo para contar acierto
    positive_threshold: float = 500.0  # Score > umbral = alto riesgo
    max_factors: int = 8
    evaluation_horizon_days: int = 30
    max_workers: Optional[int] = None  # None = un worker por miembro
    random_state: Optional[int] = None
    show_progress: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'EnsembleSettings':
        """Crear settings ignorando claves desconocidas"""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MemberModelConfig:
    """Configuración para un modelo miembro específico"""
    model_id: str
    name: str = ""
    version: str = "1.0.0"
    model_type: str = "risk_prediction"
    architecture: Dict[str, Any] = field(default_factory=lambda: {'type': 'GradientBoosting'})
    hyperparameters: Dict[str, Any] = field(default_factory=dict)
    performance: ModelPerformance = field(default_factory=ModelPerformance)
    last_trained: Optional[int] = None
    is_active: bool = True
    model_module: str = DEFAULT_MEMBER_MODULE
    model_class: str = DEFAULT_MEMBER_CLASS

    def __post_init__(self):
        if not self.model_id:
            raise ValidationError('Model config must declare a model_id', field='model_id')
        if not self.name:
            self.name = self.model_id
        if isinstance(self.performance, dict):
            self.performance = ModelPerformance.from_dict(self.performance)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MemberModelConfig':
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def is_weight_number(value: Any) -> bool:
    """Reales no booleanos (incluye escalares numpy), sin conversión de strings"""
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def coerce_weights(weights: Optional[List[Any]]) -> Optional[List[float]]:
    """
    Convertir pesos a float sólo si todos son números reales

    Raises:
        ValidationError: Si algún peso no es numérico (strings y bool incluidos)
    """
    if weights is None:
        return None
    for weight in weights:
        if not is_weight_number(weight):
            raise ValidationError('Each weight must be a finite non-negative number',
                                  field='weight_value', actual_value=weight)
    return [float(w) for w in weights]


def validate_weights(weights: List[float], expected_length: int,
                     tolerance: float = 0.001) -> None:
    """
    Validar una lista de pesos contra el invariante de suma.

    Args:
        weights: Pesos candidatos
        expected_length: Número de miembros que deben cubrir
        tolerance: Desviación máxima permitida de 1.0

    Raises:
        ValidationError: Si alguna regla no se cumple
    """
    if weights is None or len(weights) != expected_length:
        raise ValidationError('Weights array must match models array length',
                              field='weights_length',
                              actual_value=None if weights is None else len(weights))

    for weight in weights:
        if not is_weight_number(weight) or not math.isfinite(weight) or weight < 0:
            raise ValidationError('Each weight must be a finite non-negative number',
                                  field='weight_value', actual_value=weight)

    weight_sum = math.fsum(weights)
    if abs(weight_sum - 1.0) > tolerance:
        raise ValidationError('Ensemble weights must sum to 1.0',
                              field='weight_sum', actual_value=weight_sum)


@dataclass
class EnsembleConfig:
    """
    Configuración principal del ensemble.

    Mantiene la lista ordenada de miembros y sus pesos. Se valida al
    construirse y sólo debe mutarse a través de EnsembleRiskModel.
    """
    ensemble_id: str
    members: List[str]
    weights: List[float]
    combining_method: str = WEIGHTED_AVERAGE
    name: str = ""
    performance: Optional[ModelPerformance] = None
    is_active: bool = False
    weight_tolerance: float = 0.001

    def __post_init__(self):
        self.members = list(self.members) if self.members is not None else []
        self.weights = coerce_weights(self.weights)
        if not self.name:
            self.name = f"Risk Prediction Ensemble {self.ensemble_id}"
        if isinstance(self.performance, dict):
            self.performance = ModelPerformance.from_dict(self.performance)
        self.validate()

    def validate(self) -> None:
        """Validar la configuración completa del ensemble"""
        if not self.members:
            raise ValidationError('Ensemble must contain at least one model', field='members')

        validate_weights(self.weights, len(self.members), self.weight_tolerance)

        if self.combining_method not in VALID_COMBINING_METHODS:
            raise ValidationError(f"Invalid combining method: {self.combining_method}",
                                  field='combining_method',
                                  actual_value=self.combining_method)

    def copy(self) -> 'EnsembleConfig':
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EnsembleConfig':
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
