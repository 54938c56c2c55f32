"""
Fixtures compartidas para los tests del ensemble de riesgo.
"""

import os
import tempfile

# Los logs de error de los tests no deben ensuciar ./logs
os.environ.setdefault('CREDIT_LOG_DIR', os.path.join(tempfile.gettempdir(), 'credit_test_logs'))

import numpy as np
import pytest

from src.models.ensemble.ensemble_config import EnsembleConfig, EnsembleSettings, MemberModelConfig
from src.models.ensemble.exceptions import MemberModelError
from src.models.ensemble.final_ensemble import EnsembleRiskModel
from src.models.ensemble.member_model import BaseMemberModel
from src.models.ensemble.model_registry import ModelRegistry
from src.models.ensemble.prediction_types import PredictionResponse, now_ms, expiry_for


class FakeRiskModel(BaseMemberModel):
    """Modelo miembro determinista: devuelve siempre la misma predicción"""

    def __init__(self, config, prediction=500, confidence=80, factors=None, fail_on=()):
        super().__init__(config)
        self.prediction = prediction
        self.confidence = confidence
        self.factors = list(factors or [])
        self.fail_on = set(fail_on)
        self.train_calls = []
        self.requests = []

    def initialize(self):
        if 'initialize' in self.fail_on:
            raise MemberModelError('initialize exploded', self.model_id)
        self.is_initialized = True

    def train(self, features, labels, validation_data=None):
        if 'train' in self.fail_on:
            raise MemberModelError('train exploded', self.model_id)
        self.train_calls.append({
            'n_rows': len(features),
            'n_labels': len(labels),
            'validation': None if validation_data is None else (
                len(validation_data['inputs']), len(validation_data['labels'])
            )
        })
        self.is_trained = True
        return {'job_id': f"training_{self.model_id}", 'model_id': self.model_id,
                'status': 'completed', 'metrics': {}}

    def predict(self, request):
        if 'predict' in self.fail_on:
            raise MemberModelError('predict exploded', self.model_id)
        self.requests.append(request)
        timestamp = now_ms()
        return PredictionResponse(
            subject_id=request.subject_id,
            model_id=request.model_id,
            prediction=self.prediction,
            confidence=self.confidence,
            factors=list(self.factors),
            timestamp=timestamp,
            expires_at=expiry_for(timestamp, request.prediction_horizon)
        )


@pytest.fixture
def settings():
    return EnsembleSettings(random_state=7, show_progress=False)


@pytest.fixture
def member_behaviour():
    """model_id -> kwargs de FakeRiskModel; se puede modificar dentro del test"""
    return {}


@pytest.fixture
def fake_registry(member_behaviour):
    return ModelRegistry(model_factory=lambda config: FakeRiskModel(config, **member_behaviour.get(config.model_id, {})))


@pytest.fixture
def make_ensemble(settings, fake_registry):
    """Factory de ensembles inicializados con modelos falsos"""

    def _make(members, weights, combining_method='weighted_average', initialize=True):
        config = EnsembleConfig(
            ensemble_id='test_ensemble',
            members=list(members),
            weights=list(weights),
            combining_method=combining_method
        )
        ensemble = EnsembleRiskModel(config, settings=settings, model_registry=fake_registry)
        if initialize:
            ensemble.initialize([MemberModelConfig(model_id=m) for m in members])
        return ensemble

    return _make


@pytest.fixture
def training_rows():
    rows = np.full((10, 12), 100.0)
    labels = np.full(10, 560.0)
    return rows, labels
