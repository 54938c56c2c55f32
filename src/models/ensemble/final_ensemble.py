"""
Ensemble Final de Riesgo Crediticio
===================================

Sistema de ensemble que combina varios modelos miembro entrenados de forma
independiente en una única predicción de riesgo más robusta.

Características principales:
- Invariante de pesos: siempre suman 1 tras cualquier mutación exitosa
- Entrenamiento paralelo con muestras bootstrap y barrera join-all
- Combinación weighted_average, voting o stacking
- Agregación de factores explicativos por consenso
- Gestión dinámica de miembros (alta/baja con redistribución de pesos)
- Un único escritor: todas las mutaciones pasan por un lock re-entrante
"""

import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from typing import Dict, Any, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from tqdm import tqdm

from config.logging_config import CreditLogger
from .combiners import combine_predictions, combine_factors
from .ensemble_config import (
    EnsembleConfig, EnsembleSettings, MemberModelConfig, ModelPerformance,
    coerce_weights, is_weight_number, validate_weights
)
from .evaluation import compute_performance
from .exceptions import EnsembleModelError, MemberModelError, ValidationError
from .feature_mapping_utils import row_to_features, dataframe_to_rows
from .model_registry import ModelRegistry
from .prediction_types import PredictionRequest, PredictionResponse, now_ms, expiry_for

logger = CreditLogger.get_logger(__name__)

RowsLike = Union[np.ndarray, pd.DataFrame, Sequence[Sequence[float]]]


def _as_rows(data: RowsLike) -> np.ndarray:
    """Normalizar filas de entrada a una matriz 2D de floats"""
    if isinstance(data, pd.DataFrame):
        return dataframe_to_rows(data)
    rows = np.asarray(data, dtype=float)
    if rows.ndim == 1:
        rows = rows.reshape(1, -1) if rows.size else rows.reshape(0, 0)
    return rows


class EnsembleRiskModel:
    """
    Ensemble de riesgo que combina las predicciones de sus modelos miembro.

    Uso típico: construir con un EnsembleConfig válido, initialize() con una
    configuración por miembro, train_ensemble() y después predict() o
    evaluate_ensemble(). add_model()/remove_model() pueden cambiar la
    composición entre rondas de entrenamiento.
    """

    def __init__(self, ensemble: EnsembleConfig,
                 settings: Optional[EnsembleSettings] = None,
                 model_registry: Optional[ModelRegistry] = None):
        """
        Inicializar ensemble

        Args:
            ensemble: Configuración del ensemble (se valida aquí)
            settings: Parámetros de ejecución
            model_registry: Registro de instancias (uno nuevo por defecto)
        """
        self.settings = settings or EnsembleSettings()
        ensemble.weight_tolerance = self.settings.weight_tolerance
        ensemble.validate()

        self.ensemble = ensemble
        self.model_registry = model_registry or ModelRegistry()

        # Estado del entrenamiento
        self.is_initialized = False
        self.is_trained = False
        self.training_history: List[Dict[str, Any]] = []

        self._lock = threading.RLock()
        self._rng = np.random.default_rng(self.settings.random_state)

        logger.info(f"EnsembleRiskModel {ensemble.ensemble_id} creado | "
                    f"Miembros: {len(ensemble.members)} | Método: {ensemble.combining_method}")

    @property
    def ensemble_id(self) -> str:
        return self.ensemble.ensemble_id

    # ------------------------------------------------------------------
    # Inicialización
    # ------------------------------------------------------------------

    def initialize(self, model_configs: Sequence[MemberModelConfig]) -> None:
        """
        Crear e inicializar una instancia por cada miembro del ensemble

        Las configuraciones deben corresponder 1:1 y en orden con los ids
        de miembros. Una reinicialización reemplaza todas las instancias.
        """
        with self._lock:
            members = self.ensemble.members
            if len(model_configs) != len(members):
                raise ValidationError('Model configs must match ensemble model IDs',
                                      field='model_configs', actual_value=len(model_configs))

            for config, model_id in zip(model_configs, members):
                if config.model_id != model_id:
                    raise ValidationError(f"Model ID mismatch: expected {model_id}, got {config.model_id}",
                                          field='model_id', actual_value=config.model_id)

            new_models = {}
            for config in model_configs:
                try:
                    new_models[config.model_id] = self.model_registry.create_model(config)
                except Exception as e:
                    logger.error(f"Error inicializando {config.model_id}: {e}")
                    raise EnsembleModelError('Failed to initialize ensemble',
                                             self.ensemble_id, str(e)) from e

            if self.is_initialized:
                logger.warning(f"Reinicializando ensemble {self.ensemble_id}: se reemplazan las instancias")

            self.model_registry.replace_all(new_models)
            self.is_initialized = True
            self.is_trained = False

            logger.info(f"Ensemble {self.ensemble_id} inicializado con {len(new_models)} modelos")

    # ------------------------------------------------------------------
    # Entrenamiento
    # ------------------------------------------------------------------

    def train_ensemble(self, training_data: RowsLike, labels: Sequence[float],
                       validation_data: Optional[Dict[str, Any]] = None) -> Dict[str, Dict[str, Any]]:
        """
        Entrenar todos los modelos del ensemble en paralelo

        Cada modelo recibe su propia muestra bootstrap (con reemplazo) del
        80% del tamaño de los datos. El rendimiento final se calcula sobre
        los datos originales sin remuestrear.

        Args:
            training_data: Filas de features (N x 12)
            labels: Targets en escala 0-1000
            validation_data: Dict opcional {'inputs': filas, 'labels': targets}

        Returns:
            Dict con el resumen de entrenamiento de cada modelo
        """
        with self._lock:
            if not self.is_initialized:
                raise EnsembleModelError('Ensemble not initialized', self.ensemble_id)

            X = _as_rows(training_data)
            y = np.asarray(labels, dtype=float)
            if len(X) == 0 or len(X) != len(y):
                raise ValidationError('Training data and labels must be non-empty and aligned',
                                      field='labels_length', actual_value=len(y))

            val_X = val_y = None
            if validation_data is not None:
                val_X = _as_rows(validation_data['inputs'])
                val_y = np.asarray(validation_data['labels'], dtype=float)
                if len(val_X) != len(val_y):
                    raise ValidationError('Validation inputs and labels must be aligned',
                                          field='validation_labels_length', actual_value=len(val_y))

            logger.info(f"Entrenando ensemble {self.ensemble_id} | Muestras: {len(X)} | "
                        f"Modelos: {len(self.model_registry)}")
            start_time = time.time()

            # Muestreo síncrono antes de lanzar las tareas
            tasks = []
            for model_id, model in self.model_registry.items():
                sample_X, sample_y = self._create_bootstrap_sample(X, y)
                model_validation = None
                if val_X is not None:
                    boot_val_X, boot_val_y = self._create_bootstrap_sample(val_X, val_y)
                    model_validation = {'inputs': boot_val_X, 'labels': boot_val_y}
                tasks.append((model_id, model, sample_X, sample_y, model_validation))

            results = self._run_training_tasks(tasks)
            self.is_trained = True

            performance = self.evaluate_ensemble(X, y)

            duration = time.time() - start_time
            self.training_history.append({
                'timestamp': now_ms(),
                'duration_seconds': duration,
                'n_samples': int(len(X)),
                'members': list(self.ensemble.members),
                'performance': performance.to_dict()
            })
            CreditLogger.log_model_complete(logger, self.ensemble_id, duration, {
                'accuracy': performance.accuracy,
                'f1': performance.f1_score,
                'mse': performance.mse
            })
            return results

    def _create_bootstrap_sample(self, data: np.ndarray, labels: np.ndarray):
        """Muestra bootstrap con reemplazo de tamaño floor(fracción x N)"""
        sample_size = int(math.floor(len(data) * self.settings.bootstrap_fraction))
        indices = self._rng.integers(0, len(data), size=sample_size)
        return data[indices].copy(), labels[indices].copy()

    def _run_training_tasks(self, tasks: List[tuple]) -> Dict[str, Dict[str, Any]]:
        """
        Fan-out/fan-in: lanza un entrenamiento por modelo y espera a todos.

        Si algún modelo falla se propaga el primer error (en orden de
        miembros) sin deshacer los modelos que sí terminaron.
        """
        max_workers = self.settings.max_workers or max(1, len(tasks))
        futures = {}

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            for model_id, model, sample_X, sample_y, model_validation in tasks:
                future = executor.submit(model.train, sample_X, sample_y, model_validation)
                futures[future] = model_id

            for _ in tqdm(as_completed(futures), total=len(futures),
                          desc=f"Entrenando {self.ensemble_id}",
                          disable=not self.settings.show_progress):
                pass

        results = {}
        for future, model_id in futures.items():
            error = future.exception()
            if error is not None:
                logger.error(f"Error entrenando {model_id}: {error}")
                raise EnsembleModelError('Ensemble training failed',
                                         self.ensemble_id, str(error)) from error
            results[model_id] = future.result()
        return results

    # ------------------------------------------------------------------
    # Predicción
    # ------------------------------------------------------------------

    def predict(self, request: PredictionRequest) -> PredictionResponse:
        """
        Predicción del ensemble combinando una respuesta por miembro

        La reducción empieza sólo cuando todas las respuestas han llegado;
        cualquier fallo de un miembro hace fallar la predicción completa.
        """
        with self._lock:
            if not self.is_initialized:
                raise EnsembleModelError('Ensemble not initialized', self.ensemble_id)
            if not self.is_trained:
                raise EnsembleModelError('Ensemble not trained', self.ensemble_id)

            weights = list(self.ensemble.weights)
            method = self.ensemble.combining_method
            try:
                members = [(model_id, self.model_registry.get(model_id)) for model_id in self.ensemble.members]
            except MemberModelError as e:
                raise EnsembleModelError('Ensemble prediction failed', self.ensemble_id, str(e)) from e

        model_predictions = []
        for model_id, model in members:
            try:
                model_predictions.append(model.predict(replace(request, model_id=model_id)))
            except Exception as e:
                logger.error(f"Error de predicción en {model_id}: {e}")
                raise EnsembleModelError('Ensemble prediction failed',
                                         self.ensemble_id, str(e)) from e

        prediction, confidence = combine_predictions(method, model_predictions, weights)
        factors = combine_factors(model_predictions, self.settings.max_factors)

        timestamp = now_ms()
        return PredictionResponse(
            subject_id=request.subject_id,
            model_id=self.ensemble_id,
            prediction=prediction,
            confidence=confidence,
            factors=factors,
            timestamp=timestamp,
            expires_at=expiry_for(timestamp, request.prediction_horizon)
        )

    # ------------------------------------------------------------------
    # Evaluación
    # ------------------------------------------------------------------

    def evaluate_ensemble(self, data: RowsLike, labels: Sequence[float]) -> ModelPerformance:
        """
        Evaluar el ensemble sobre datos etiquetados

        Cada fila se convierte al mapa de 12 features y pasa por el camino
        completo de predicción. El resultado reemplaza el snapshot guardado.
        """
        with self._lock:
            rows = _as_rows(data)
            targets = np.asarray(labels, dtype=float)

            predictions = []
            for i, row in enumerate(rows):
                request = PredictionRequest(
                    subject_id=f"test_{i}",
                    model_id=self.ensemble_id,
                    features=row_to_features(row),
                    prediction_horizon=self.settings.evaluation_horizon_days
                )
                predictions.append(self.predict(request).prediction)

            performance = compute_performance(
                predictions, targets,
                tolerance=self.settings.accuracy_tolerance,
                positive_threshold=self.settings.positive_threshold
            )
            self.ensemble.performance = performance

            logger.info(f"Evaluación {self.ensemble_id} | accuracy={performance.accuracy:.3f} | "
                        f"precision={performance.precision:.3f} | recall={performance.recall:.3f} | "
                        f"mse={performance.mse:.1f}")
            return performance

    # ------------------------------------------------------------------
    # Configuración y miembros
    # ------------------------------------------------------------------

    def get_ensemble(self) -> EnsembleConfig:
        """Copia de la configuración actual"""
        with self._lock:
            return self.ensemble.copy()

    def get_model_info(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            info = self.model_registry.get_model_info()
            for model_id, weight in zip(self.ensemble.members, self.ensemble.weights):
                if model_id in info:
                    info[model_id]['weight'] = weight
            return info

    def update_weights(self, new_weights: Sequence[float]) -> None:
        """Reemplazar todos los pesos de forma atómica"""
        with self._lock:
            candidate = coerce_weights(list(new_weights))
            validate_weights(candidate, len(self.ensemble.weights), self.settings.weight_tolerance)
            self.ensemble.weights = candidate
            logger.info(f"Pesos actualizados en {self.ensemble_id}: {[round(w, 4) for w in candidate]}")

    def add_model(self, model_config: MemberModelConfig, weight: float) -> None:
        """
        Añadir un modelo con el peso dado

        Los pesos existentes se escalan por (1 - weight). El nuevo modelo
        queda inicializado pero sin entrenar hasta el próximo train_ensemble.
        Si el id ya está registrado se reutiliza la instancia existente y
        sólo se añade otra entrada de miembro con su peso.
        """
        with self._lock:
            if not is_weight_number(weight) or not math.isfinite(weight) or weight <= 0 or weight >= 1:
                raise ValidationError('Model weight must be between 0 and 1',
                                      field='weight', actual_value=weight)

            valid_weight = float(weight)
            model_id = model_config.model_id
            if model_id in self.model_registry:
                model = self.model_registry.get(model_id)
                logger.info(f"Modelo {model_id} ya registrado: se reutiliza su instancia")
            else:
                try:
                    model = self.model_registry.create_model(model_config)
                except Exception as e:
                    logger.error(f"Error inicializando {model_id}: {e}")
                    raise EnsembleModelError('Failed to add model',
                                             self.ensemble_id, str(e)) from e

            adjustment_factor = 1 - valid_weight
            new_weights = [w * adjustment_factor for w in self.ensemble.weights] + [valid_weight]
            new_members = self.ensemble.members + [model_id]
            validate_weights(new_weights, len(new_members), self.settings.weight_tolerance)

            self.ensemble.members = new_members
            self.ensemble.weights = new_weights
            if model_id not in self.model_registry:
                self.model_registry.register(model_id, model)

            logger.info(f"Modelo {model_id} añadido a {self.ensemble_id} con peso {valid_weight}")

    def remove_model(self, model_id: str) -> None:
        """
        Eliminar un modelo y redistribuir su peso proporcionalmente
        """
        with self._lock:
            members = self.ensemble.members
            if model_id not in members:
                raise ValidationError(f"Model {model_id} not found in ensemble",
                                      field='model_id', actual_value=model_id)

            if len(members) <= 1:
                raise ValidationError('Cannot remove the last model from ensemble',
                                      field='members')

            index = members.index(model_id)
            removed_weight = self.ensemble.weights[index]
            remaining_members = members[:index] + members[index + 1:]
            remaining_weights = self.ensemble.weights[:index] + self.ensemble.weights[index + 1:]

            total_remaining_weight = math.fsum(remaining_weights)
            if total_remaining_weight <= 0:
                raise ValidationError('Cannot redistribute weight over zero-weight models',
                                      field='weight_sum', actual_value=total_remaining_weight)

            new_weights = [w + (w / total_remaining_weight) * removed_weight for w in remaining_weights]
            validate_weights(new_weights, len(remaining_members), self.settings.weight_tolerance)

            self.ensemble.members = remaining_members
            self.ensemble.weights = new_weights
            if model_id not in remaining_members:
                self.model_registry.remove(model_id)

            logger.info(f"Modelo {model_id} eliminado de {self.ensemble_id} | "
                        f"Peso redistribuido: {removed_weight:.4f}")
