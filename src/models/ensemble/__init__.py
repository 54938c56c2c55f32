"""
Módulo Ensemble de Riesgo
=========================

Sistema de ensemble que combina varios modelos de riesgo crediticio
en una predicción final más robusta.

Componentes:
- EnsembleRiskModel: Modelo principal de ensemble
- ModelRegistry: Registro de instancias de modelos miembro
- EnsembleConfig: Configuración validada del ensemble
"""

from .ensemble_config import EnsembleConfig, EnsembleSettings, MemberModelConfig, ModelPerformance
from .exceptions import CreditModelError, ValidationError, EnsembleModelError, MemberModelError
from .final_ensemble import EnsembleRiskModel
from .member_model import BaseMemberModel, SklearnRiskModel
from .model_registry import ModelRegistry
from .prediction_types import PredictionRequest, PredictionResponse, PredictionFactor

__all__ = [
    'EnsembleRiskModel',
    'ModelRegistry',
    'EnsembleConfig',
    'EnsembleSettings',
    'MemberModelConfig',
    'ModelPerformance',
    'BaseMemberModel',
    'SklearnRiskModel',
    'PredictionRequest',
    'PredictionResponse',
    'PredictionFactor',
    'CreditModelError',
    'ValidationError',
    'EnsembleModelError',
    'MemberModelError'
]
