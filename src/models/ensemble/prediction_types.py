"""
Tipos de Predicción
===================

Registros intercambiados entre el ensemble y sus modelos miembro.
Los timestamps son milisegundos desde epoch.
"""

import math
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, List, Any, Optional

MS_PER_DAY = 24 * 60 * 60 * 1000

IMPACT_POSITIVE = 'positive'
IMPACT_NEGATIVE = 'negative'


def now_ms() -> int:
    return int(datetime.now().timestamp() * 1000)


@dataclass
class PredictionFactor:
    """Factor explicativo asociado a una predicción"""
    feature: str
    importance: float  # 0-100
    value: Any
    impact: str
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PredictionRequest:
    """Solicitud de predicción para un sujeto"""
    subject_id: str
    model_id: str
    features: Dict[str, float]
    prediction_horizon: int  # días


@dataclass
class PredictionResponse:
    """Respuesta de predicción en escala 0-1000"""
    subject_id: str
    model_id: str
    prediction: float
    confidence: float
    factors: List[PredictionFactor] = field(default_factory=list)
    timestamp: int = field(default_factory=now_ms)
    expires_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def expiry_for(timestamp: int, horizon_days: int) -> int:
    """Calcular expiración = timestamp + horizonte en milisegundos"""
    return timestamp + horizon_days * MS_PER_DAY


def round_half_up(value: float) -> int:
    """Redondeo .5 hacia arriba (Python redondea .5 al par)"""
    return int(math.floor(value + 0.5))
