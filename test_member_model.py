"""
Tests del modelo miembro de referencia basado en scikit-learn.
"""

import numpy as np
import pytest

from pipelines.ensemble.ensemble_trainer import generate_training_data
from src.models.ensemble.ensemble_config import MemberModelConfig
from src.models.ensemble.exceptions import MemberModelError, ValidationError
from src.models.ensemble.member_model import SklearnRiskModel
from src.models.ensemble.prediction_types import PredictionRequest, MS_PER_DAY


@pytest.fixture(scope='module')
def small_dataset():
    return generate_training_data(n_samples=300, random_state=3)


@pytest.fixture
def ridge_model():
    model = SklearnRiskModel(MemberModelConfig(model_id='ridge', architecture={'type': 'Ridge'}))
    model.initialize()
    return model


def _request(features):
    return PredictionRequest(subject_id='wallet_9', model_id='ridge', features=features, prediction_horizon=14)


def test_unsupported_architecture_is_rejected():
    with pytest.raises(ValidationError):
        SklearnRiskModel(MemberModelConfig(model_id='x', architecture={'type': 'Transformer'}))


def test_invalid_hyperparameters_fail_initialization():
    model = SklearnRiskModel(MemberModelConfig(model_id='x', architecture={'type': 'Ridge'},
                                               hyperparameters={'not_a_param': 1}))
    with pytest.raises(MemberModelError):
        model.initialize()
    assert not model.is_initialized


def test_predict_requires_training(ridge_model):
    with pytest.raises(MemberModelError, match='not trained'):
        ridge_model.predict(_request({}))


def test_train_rejects_wrong_shape(ridge_model):
    with pytest.raises(MemberModelError):
        ridge_model.train(np.zeros((10, 5)), np.zeros(10))


def test_train_reports_job_summary(ridge_model, small_dataset):
    data, labels = small_dataset

    result = ridge_model.train(data, labels, {'inputs': data[:50], 'labels': labels[:50]})

    assert result['status'] == 'completed'
    assert result['model_id'] == 'ridge'
    assert result['metrics']['n_samples'] == 300
    assert 0.0 <= result['metrics']['accuracy'] <= 1.0
    assert ridge_model.is_trained
    assert ridge_model.config.last_trained is not None
    assert ridge_model.config.performance.accuracy == result['metrics']['accuracy']


def test_predict_bounds_and_factors(ridge_model, small_dataset):
    ridge_model.train(*small_dataset)

    response = ridge_model.predict(_request({'defiReliabilityScore': 820, 'marketVolatility': 50}))

    assert 0 <= response.prediction <= 1000
    assert 0 <= response.confidence <= 100
    assert response.model_id == 'ridge'
    assert response.expires_at - response.timestamp == 14 * MS_PER_DAY

    assert len(response.factors) == 1
    factor = response.factors[0]
    assert factor.feature == 'DeFi Reliability Score'
    assert factor.importance == 82
    assert factor.impact == 'negative'
    assert factor.description == 'Strong DeFi track record'


def test_factors_are_top_five_by_importance(ridge_model, small_dataset):
    ridge_model.train(*small_dataset)
    features = {
        'defiReliabilityScore': 300, 'tradingConsistencyScore': 900, 'stakingCommitmentScore': 450,
        'governanceParticipationScore': 700, 'liquidityProviderScore': 200,
        'totalTransactionVolume': 50000, 'averageTransactionSize': 120
    }

    factors = ridge_model.predict(_request(features)).factors

    assert len(factors) == 5
    assert factors[0].importance == 100
    assert [f.importance for f in factors] == sorted((f.importance for f in factors), reverse=True)
    assert factors[-1].feature == 'DeFi Reliability Score'
