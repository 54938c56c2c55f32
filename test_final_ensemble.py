"""
Tests del EnsembleRiskModel: inicialización, entrenamiento, predicción y evaluación.
"""

import math

import numpy as np
import pandas as pd
import pytest

from src.models.ensemble.ensemble_config import EnsembleConfig, MemberModelConfig
from src.models.ensemble.exceptions import EnsembleModelError, ValidationError
from src.models.ensemble.feature_mapping_utils import FEATURE_NAMES
from src.models.ensemble.final_ensemble import EnsembleRiskModel
from src.models.ensemble.prediction_types import PredictionRequest, PredictionFactor, MS_PER_DAY


def _request(horizon=30):
    return PredictionRequest(subject_id='wallet_1', model_id='test_ensemble',
                             features={'defiReliabilityScore': 820.0}, prediction_horizon=horizon)


# ----------------------------------------------------------------------
# Inicialización
# ----------------------------------------------------------------------

def test_initialize_rejects_config_count_mismatch(make_ensemble):
    ensemble = make_ensemble(['a', 'b'], [0.5, 0.5], initialize=False)

    with pytest.raises(ValidationError):
        ensemble.initialize([MemberModelConfig(model_id='a')])
    assert not ensemble.is_initialized


def test_initialize_rejects_id_mismatch(make_ensemble):
    ensemble = make_ensemble(['a', 'b'], [0.5, 0.5], initialize=False)

    with pytest.raises(ValidationError) as exc_info:
        ensemble.initialize([MemberModelConfig(model_id='b'), MemberModelConfig(model_id='a')])
    assert 'expected a' in str(exc_info.value)


def test_initialize_failure_registers_nothing(make_ensemble, member_behaviour):
    member_behaviour['b'] = {'fail_on': ['initialize']}
    ensemble = make_ensemble(['a', 'b'], [0.5, 0.5], initialize=False)

    with pytest.raises(EnsembleModelError) as exc_info:
        ensemble.initialize([MemberModelConfig(model_id='a'), MemberModelConfig(model_id='b')])

    assert 'Failed to initialize ensemble' in str(exc_info.value)
    assert 'initialize exploded' in exc_info.value.member_message
    assert exc_info.value.ensemble_id == 'test_ensemble'
    assert not ensemble.is_initialized
    assert len(ensemble.model_registry) == 0


def test_reinitialize_replaces_instances_and_resets_training(make_ensemble, training_rows):
    ensemble = make_ensemble(['a', 'b'], [0.5, 0.5])
    ensemble.train_ensemble(*training_rows)
    old_instance = ensemble.model_registry.get('a')

    ensemble.initialize([MemberModelConfig(model_id='a'), MemberModelConfig(model_id='b')])

    assert ensemble.model_registry.get('a') is not old_instance
    assert ensemble.is_initialized
    assert not ensemble.is_trained


def test_default_registry_builds_sklearn_members(settings):
    config = EnsembleConfig('risk', ['ridge_a', 'ridge_b'], [0.5, 0.5])
    ensemble = EnsembleRiskModel(config, settings=settings)
    ensemble.initialize([
        MemberModelConfig(model_id='ridge_a', architecture={'type': 'Ridge'}),
        MemberModelConfig(model_id='ridge_b', architecture={'type': 'Ridge'}, hyperparameters={'alpha': 10.0})
    ])

    info = ensemble.get_model_info()
    assert info['ridge_a']['class'] == 'SklearnRiskModel'
    assert info['ridge_b']['weight'] == 0.5
    assert info['ridge_a']['initialized'] and not info['ridge_a']['trained']


# ----------------------------------------------------------------------
# Entrenamiento
# ----------------------------------------------------------------------

def test_train_requires_initialization(make_ensemble, training_rows):
    ensemble = make_ensemble(['a', 'b'], [0.5, 0.5], initialize=False)

    with pytest.raises(EnsembleModelError, match='not initialized'):
        ensemble.train_ensemble(*training_rows)


def test_train_rejects_misaligned_labels(make_ensemble):
    ensemble = make_ensemble(['a', 'b'], [0.5, 0.5])

    with pytest.raises(ValidationError):
        ensemble.train_ensemble(np.zeros((5, 12)), np.zeros(4))


def test_train_uses_bootstrap_samples(make_ensemble, training_rows):
    ensemble = make_ensemble(['a', 'b'], [0.5, 0.5])
    rows, labels = training_rows
    validation = {'inputs': np.zeros((5, 12)), 'labels': np.full(5, 300.0)}

    results = ensemble.train_ensemble(rows, labels, validation)

    assert set(results) == {'a', 'b'}
    assert all(r['status'] == 'completed' for r in results.values())
    for model_id in ('a', 'b'):
        call = ensemble.model_registry.get(model_id).train_calls[0]
        assert call['n_rows'] == call['n_labels'] == 8
        assert call['validation'] == (4, 4)


def test_train_stores_performance_and_history(make_ensemble, training_rows, member_behaviour):
    member_behaviour['a'] = {'prediction': 800, 'confidence': 90}
    member_behaviour['b'] = {'prediction': 200, 'confidence': 70}
    ensemble = make_ensemble(['a', 'b'], [0.6, 0.4])

    ensemble.train_ensemble(*training_rows)

    assert ensemble.is_trained
    performance = ensemble.get_ensemble().performance
    # Ensemble predice 560 y todos los labels son 560
    assert performance.accuracy == 1.0
    assert performance.mse == 0.0
    assert len(ensemble.training_history) == 1
    assert ensemble.training_history[0]['n_samples'] == 10


def test_train_failure_waits_for_all_members(make_ensemble, training_rows, member_behaviour):
    member_behaviour['b'] = {'fail_on': ['train']}
    ensemble = make_ensemble(['a', 'b', 'c'], [0.4, 0.3, 0.3])

    with pytest.raises(EnsembleModelError) as exc_info:
        ensemble.train_ensemble(*training_rows)

    assert 'Ensemble training failed' in str(exc_info.value)
    assert 'train exploded' in str(exc_info.value)
    # Sin rollback: los modelos que terminaron quedan entrenados
    assert ensemble.model_registry.get('a').is_trained
    assert ensemble.model_registry.get('c').is_trained
    assert not ensemble.is_trained


def test_train_accepts_dataframe(make_ensemble):
    ensemble = make_ensemble(['a', 'b'], [0.5, 0.5])
    df = pd.DataFrame(np.full((6, 12), 10.0), columns=FEATURE_NAMES)

    ensemble.train_ensemble(df, np.full(6, 500.0))

    call = ensemble.model_registry.get('a').train_calls[0]
    assert call['n_rows'] == 4


# ----------------------------------------------------------------------
# Predicción
# ----------------------------------------------------------------------

def test_predict_before_training_fails(make_ensemble):
    ensemble = make_ensemble(['a', 'b'], [0.5, 0.5])

    with pytest.raises(EnsembleModelError, match='not trained'):
        ensemble.predict(_request())


def test_predict_weighted_average(make_ensemble, training_rows, member_behaviour):
    member_behaviour['a'] = {'prediction': 800, 'confidence': 90,
                             'factors': [PredictionFactor('DeFi Reliability Score', 82, 820.0, 'negative', 'x')]}
    member_behaviour['b'] = {'prediction': 200, 'confidence': 70}
    ensemble = make_ensemble(['a', 'b'], [0.6, 0.4])
    ensemble.train_ensemble(*training_rows)

    response = ensemble.predict(_request(horizon=7))

    assert response.prediction == 560
    assert response.confidence == 82
    assert response.model_id == 'test_ensemble'
    assert response.subject_id == 'wallet_1'
    assert response.expires_at - response.timestamp == 7 * MS_PER_DAY
    assert [f.feature for f in response.factors] == ['DeFi Reliability Score']
    assert ensemble.model_registry.get('a').requests[-1].model_id == 'a'
    assert ensemble.model_registry.get('b').requests[-1].model_id == 'b'


def test_predict_voting(make_ensemble, training_rows, member_behaviour):
    member_behaviour.update({'a': {'prediction': 250}, 'b': {'prediction': 650}, 'c': {'prediction': 620}})
    ensemble = make_ensemble(['a', 'b', 'c'], [0.2, 0.4, 0.4], combining_method='voting')
    ensemble.train_ensemble(*training_rows)

    response = ensemble.predict(_request())

    assert (response.prediction, response.confidence) == (750, 67)


def test_predict_fails_when_any_member_fails(make_ensemble, training_rows, member_behaviour):
    ensemble = make_ensemble(['a', 'b'], [0.5, 0.5])
    ensemble.train_ensemble(*training_rows)
    ensemble.model_registry.get('b').fail_on.add('predict')

    with pytest.raises(EnsembleModelError) as exc_info:
        ensemble.predict(_request())
    assert 'predict exploded' in str(exc_info.value)


# ----------------------------------------------------------------------
# Evaluación y consultas
# ----------------------------------------------------------------------

def test_evaluate_ensemble_metrics(make_ensemble, training_rows, member_behaviour):
    member_behaviour['a'] = {'prediction': 800, 'confidence': 90}
    member_behaviour['b'] = {'prediction': 200, 'confidence': 70}
    ensemble = make_ensemble(['a', 'b'], [0.6, 0.4])
    ensemble.train_ensemble(*training_rows)

    performance = ensemble.evaluate_ensemble(np.zeros((2, 12)), [560.0, 1000.0])

    assert performance.accuracy == 0.5
    assert performance.precision == 1.0
    assert performance.recall == 1.0
    assert performance.mse == pytest.approx(440 ** 2 / 2)
    assert performance.mae == pytest.approx(math.sqrt(440 ** 2 / 2))
    assert performance.auc == 0.5
    assert ensemble.get_ensemble().performance == performance

    request = ensemble.model_registry.get('a').requests[-1]
    assert request.subject_id == 'test_1'
    assert request.prediction_horizon == 30
    assert set(request.features) == set(FEATURE_NAMES)


def test_evaluate_empty_dataset_fails(make_ensemble, training_rows):
    ensemble = make_ensemble(['a', 'b'], [0.5, 0.5])
    ensemble.train_ensemble(*training_rows)

    with pytest.raises(ValidationError):
        ensemble.evaluate_ensemble(np.zeros((0, 12)), [])


def test_get_ensemble_returns_copy(make_ensemble):
    ensemble = make_ensemble(['a', 'b'], [0.5, 0.5])

    snapshot = ensemble.get_ensemble()
    snapshot.weights[0] = 1.0

    assert ensemble.get_ensemble().weights == [0.5, 0.5]


def test_predict_stacking(make_ensemble, training_rows, member_behaviour):
    member_behaviour['a'] = {'prediction': 800, 'confidence': 100}
    member_behaviour['b'] = {'prediction': 200, 'confidence': 50}
    ensemble = make_ensemble(['a', 'b'], [0.9, 0.1], combining_method='stacking')
    ensemble.train_ensemble(*training_rows)

    response = ensemble.predict(_request())

    # Los pesos del ensemble no intervienen en stacking
    assert (response.prediction, response.confidence) == (600, 70)


def test_predict_with_duplicate_member_ids(make_ensemble, training_rows, member_behaviour):
    member_behaviour['a'] = {'prediction': 800, 'confidence': 90}
    member_behaviour['b'] = {'prediction': 200, 'confidence': 70}
    ensemble = make_ensemble(['a', 'b', 'a'], [0.3, 0.4, 0.3])
    ensemble.train_ensemble(*training_rows)
    model_a = ensemble.model_registry.get('a')
    calls_before = len(model_a.requests)

    response = ensemble.predict(_request())

    assert len(model_a.requests) - calls_before == 2
    assert (response.prediction, response.confidence) == (560, 82)


def test_predict_uses_instances_snapshotted_under_lock(make_ensemble, training_rows):
    ensemble = make_ensemble(['a', 'b'], [0.5, 0.5])
    ensemble.train_ensemble(*training_rows)
    model_a = ensemble.model_registry.get('a')
    original_predict = model_a.predict

    def predict_then_remove(request):
        # Una baja concurrente no debe romper la predicción en curso
        ensemble.remove_model('b')
        return original_predict(request)

    model_a.predict = predict_then_remove

    response = ensemble.predict(_request())

    assert response.prediction == 500
    assert ensemble.get_ensemble().members == ['a']
