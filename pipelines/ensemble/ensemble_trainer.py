"""
Trainer Completo para el Ensemble de Riesgo
===========================================

Trainer que integra carga de datos, construcción y entrenamiento del
ensemble de riesgo crediticio y generación de métricas y visualizaciones.

Características:
- Carga de datos desde CSV o generación sintética
- Construcción del ensemble con pesos iguales por defecto
- Entrenamiento con división entrenamiento/validación
- Dashboard PNG con métricas y pesos del ensemble
- Resultados en JSON y modelos miembro en joblib
"""

import argparse
import json
import os
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Any

import joblib
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split

from config.logging_config import configure_trainer_logging, CreditLogger
from src.models.ensemble.ensemble_config import (
    EnsembleConfig, EnsembleSettings, MemberModelConfig, VALID_COMBINING_METHODS, WEIGHTED_AVERAGE
)
from src.models.ensemble.exceptions import ValidationError
from src.models.ensemble.feature_mapping_utils import FEATURE_NAMES, dataframe_to_rows
from src.models.ensemble.final_ensemble import EnsembleRiskModel

logger = configure_trainer_logging('ensemble')

TARGET_COLUMN = 'risk_score'


def generate_training_data(n_samples: int = 10000,
                           random_state: Optional[int] = 42) -> Tuple[np.ndarray, np.ndarray]:
    """
    Generar datos sintéticos de entrenamiento en el orden del esquema

    El riesgo baja con los cinco scores de comportamiento y sube con la
    volatilidad de mercado y la tasa histórica de impago.

    Returns:
        Tuple (filas N x 12, labels 0-1000)
    """
    rng = np.random.default_rng(random_state)

    behaviour_scores = rng.uniform(0, 1000, size=(n_samples, 5))
    total_volume = rng.uniform(0, 1_000_000, size=n_samples)
    transaction_frequency = rng.uniform(0, 100, size=n_samples)
    average_size = total_volume / np.maximum(transaction_frequency, 1)
    protocol_diversification = rng.uniform(0, 20, size=n_samples)
    historical_default = rng.uniform(0, 10, size=n_samples)
    market_volatility = rng.uniform(0, 100, size=n_samples)
    liquidity_ratio = rng.uniform(0, 100, size=n_samples)

    data = np.column_stack([
        behaviour_scores,
        total_volume,
        average_size,
        transaction_frequency,
        protocol_diversification,
        historical_default,
        market_volatility,
        liquidity_ratio
    ])

    risk_adjustment = market_volatility * 2 + historical_default * 10
    labels = np.clip(1000 - behaviour_scores.mean(axis=1) + risk_adjustment, 0, 1000)

    return data, labels


def create_default_member_configs() -> List[MemberModelConfig]:
    """Tres modelos heterogéneos para diversidad del ensemble"""
    return [
        MemberModelConfig(
            model_id='gbr_risk',
            name='Gradient Boosting Risk Model',
            architecture={'type': 'GradientBoosting'},
            hyperparameters={'n_estimators': 150, 'max_depth': 3, 'learning_rate': 0.05,
                             'subsample': 0.8, 'random_state': 42}
        ),
        MemberModelConfig(
            model_id='rf_risk',
            name='Random Forest Risk Model',
            architecture={'type': 'RandomForest'},
            hyperparameters={'n_estimators': 200, 'max_depth': 8, 'n_jobs': 1, 'random_state': 42}
        ),
        MemberModelConfig(
            model_id='ridge_risk',
            name='Ridge Risk Model',
            architecture={'type': 'Ridge'},
            hyperparameters={'alpha': 1.0}
        ),
    ]


class EnsembleRiskTrainer:
    """
    Trainer completo para el ensemble de riesgo.

    Integra carga de datos, entrenamiento, evaluación y visualizaciones.
    """

    def __init__(self,
                 data_path: Optional[str] = None,
                 output_dir: str = "results/ensemble_model",
                 n_samples: int = 10000,
                 validation_split: float = 0.2,
                 settings: Optional[EnsembleSettings] = None,
                 random_state: int = 42):
        """
        Inicializa el trainer del ensemble.

        Args:
            data_path: CSV con las 12 features y la columna risk_score
                (None = datos sintéticos)
            output_dir: Directorio de salida para resultados
            n_samples: Muestras sintéticas si no hay CSV
            validation_split: Fracción reservada para validación
            settings: Parámetros de ejecución del ensemble
            random_state: Semilla para reproducibilidad
        """
        self.data_path = data_path
        self.output_dir = os.path.normpath(output_dir)
        self.n_samples = n_samples
        self.validation_split = validation_split
        self.random_state = random_state
        self.settings = settings or EnsembleSettings(random_state=random_state)

        os.makedirs(self.output_dir, exist_ok=True)

        self.X_train = None
        self.y_train = None
        self.X_val = None
        self.y_val = None
        self.member_configs: List[MemberModelConfig] = []
        self.ensemble_model: Optional[EnsembleRiskModel] = None
        self.training_results: Optional[Dict[str, Any]] = None

        logger.info(f"Trainer Ensemble de Riesgo inicializado | Output: {self.output_dir}")

    def load_and_prepare_data(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Carga (o genera) los datos y los divide en entrenamiento/validación.

        Returns:
            Tuple con filas y labels completos
        """
        if self.data_path:
            df = pd.read_csv(self.data_path)
            if TARGET_COLUMN not in df.columns:
                raise ValidationError(f"Column '{TARGET_COLUMN}' not found in {self.data_path}",
                                      field=TARGET_COLUMN)

            missing = [name for name in FEATURE_NAMES if name not in df.columns]
            if missing:
                CreditLogger.log_warning(logger, f"Features ausentes rellenadas con 0: {missing}")

            df = df.dropna(subset=[TARGET_COLUMN])
            data = dataframe_to_rows(df)
            labels = df[TARGET_COLUMN].to_numpy(dtype=float)
            source = self.data_path
        else:
            data, labels = generate_training_data(self.n_samples, self.random_state)
            source = 'synthetic'

        CreditLogger.log_data_info(logger, {'total_records': len(data), 'source': source})

        self.X_train, self.X_val, self.y_train, self.y_val = train_test_split(
            data, labels, test_size=self.validation_split, random_state=self.random_state
        )
        logger.info(f"  - Entrenamiento: {len(self.X_train)} registros")
        logger.info(f"  - Validación: {len(self.X_val)} registros")

        return data, labels

    def create_ensemble(self, ensemble_id: str,
                        member_configs: List[MemberModelConfig],
                        weights: Optional[List[float]] = None,
                        combining_method: str = WEIGHTED_AVERAGE) -> EnsembleRiskModel:
        """
        Construye e inicializa el ensemble.

        Args:
            ensemble_id: Identificador del ensemble
            member_configs: Configuraciones de los modelos miembro (mínimo 2)
            weights: Pesos de los miembros (iguales por defecto)
            combining_method: Método de combinación

        Returns:
            EnsembleRiskModel inicializado
        """
        if len(member_configs) < 2:
            raise ValidationError('Ensemble requires at least 2 models',
                                  field='members', actual_value=len(member_configs))

        ensemble_weights = weights or [1 / len(member_configs)] * len(member_configs)

        config = EnsembleConfig(
            ensemble_id=ensemble_id,
            members=[c.model_id for c in member_configs],
            weights=ensemble_weights,
            combining_method=combining_method,
            weight_tolerance=self.settings.weight_tolerance
        )

        self.member_configs = list(member_configs)
        self.ensemble_model = EnsembleRiskModel(config, settings=self.settings)
        self.ensemble_model.initialize(member_configs)
        return self.ensemble_model

    def train_ensemble(self) -> Dict[str, Any]:
        """
        Entrena el ensemble sobre los datos preparados.

        Returns:
            Dict: Resultados del entrenamiento
        """
        if self.ensemble_model is None:
            raise ValidationError('Ensemble must be created before training', field='ensemble')
        if self.X_train is None:
            self.load_and_prepare_data()

        logger.info("Entrenando ensemble de riesgo")
        start_time = datetime.now()

        member_results = self.ensemble_model.train_ensemble(
            self.X_train, self.y_train,
            {'inputs': self.X_val, 'labels': self.y_val}
        )
        training_performance = self.ensemble_model.get_ensemble().performance

        # El snapshot guardado en el ensemble pasa a ser el de validación
        validation_performance = self.ensemble_model.evaluate_ensemble(self.X_val, self.y_val)

        training_duration = (datetime.now() - start_time).total_seconds()

        self.training_results = {
            'ensemble': self.ensemble_model.get_ensemble().to_dict(),
            'member_results': member_results,
            'training_performance': training_performance.to_dict(),
            'validation_performance': validation_performance.to_dict(),
            'training_duration_seconds': training_duration,
            'n_train': int(len(self.X_train)),
            'n_validation': int(len(self.X_val))
        }

        logger.info(f"Ensemble completado en {training_duration:.1f}s")
        return self.training_results

    def generate_visualizations(self) -> Optional[str]:
        """
        Genera un dashboard PNG con métricas y pesos del ensemble.

        Returns:
            Ruta del PNG generado o None si no hay resultados
        """
        if not self.training_results:
            logger.warning("No hay resultados para visualizar")
            return None

        fig, (ax_metrics, ax_weights) = plt.subplots(1, 2, figsize=(14, 6))
        fig.suptitle(f"Dashboard - {self.ensemble_model.ensemble_id}", fontsize=16, fontweight='bold')

        metric_names = ['accuracy', 'precision', 'recall', 'f1_score', 'auc']
        train_perf = self.training_results['training_performance']
        val_perf = self.training_results['validation_performance']
        positions = np.arange(len(metric_names))

        ax_metrics.bar(positions - 0.2, [train_perf[m] for m in metric_names], 0.4, label='Entrenamiento')
        ax_metrics.bar(positions + 0.2, [val_perf[m] for m in metric_names], 0.4, label='Validación')
        ax_metrics.set_xticks(positions)
        ax_metrics.set_xticklabels(metric_names, rotation=30)
        ax_metrics.set_ylim(0, 1)
        ax_metrics.set_title('Métricas del Ensemble', fontweight='bold')
        ax_metrics.legend()

        ensemble = self.training_results['ensemble']
        ax_weights.barh(ensemble['members'], ensemble['weights'], color='steelblue')
        ax_weights.set_xlim(0, 1)
        ax_weights.set_title('Pesos de los Modelos', fontweight='bold')

        dashboard_path = os.path.join(self.output_dir, "ensemble_risk_dashboard.png")
        plt.savefig(dashboard_path, dpi=100, bbox_inches='tight', facecolor='white')
        plt.close(fig)

        logger.info(f"Dashboard guardado: {dashboard_path}")
        return dashboard_path

    def save_results(self) -> Dict[str, str]:
        """
        Guarda resultados en JSON y los modelos miembro en joblib.

        Returns:
            Dict con las rutas generadas
        """
        logger.info("Guardando resultados del ensemble")
        paths = {}

        if self.ensemble_model:
            models_path = os.path.join(self.output_dir, "ensemble_members.joblib")
            joblib.dump(dict(self.ensemble_model.model_registry.items()), models_path)
            paths['models'] = models_path
            logger.info(f"Modelos guardados: {models_path}")

        if self.training_results:
            json_results = {
                'timestamp': datetime.now().isoformat(),
                'status': 'completed',
                **self.training_results
            }
            metrics_path = os.path.join(self.output_dir, "ensemble_training_results.json")
            with open(metrics_path, 'w') as f:
                json.dump(json_results, f, indent=2, default=str)
            paths['results'] = metrics_path
            logger.info(f"Métricas guardadas: {metrics_path}")

        return paths

    def run_complete_training(self, ensemble_id: str = 'risk_ensemble',
                              member_configs: Optional[List[MemberModelConfig]] = None,
                              weights: Optional[List[float]] = None,
                              combining_method: str = WEIGHTED_AVERAGE) -> Dict[str, Any]:
        """
        Pipeline completo: datos, ensemble, entrenamiento, dashboard y guardado.
        """
        logger.info("=" * 60)
        logger.info("INICIANDO ENTRENAMIENTO DEL ENSEMBLE DE RIESGO")
        logger.info("=" * 60)

        self.load_and_prepare_data()
        self.create_ensemble(ensemble_id, member_configs or create_default_member_configs(),
                             weights, combining_method)
        self.train_ensemble()
        self.generate_visualizations()
        self.save_results()

        val_perf = self.training_results['validation_performance']
        logger.info("=" * 60)
        logger.info(f"Modelos: {', '.join(self.ensemble_model.ensemble.members)}")
        logger.info(f"Validación | accuracy={val_perf['accuracy']:.3f} | f1={val_perf['f1_score']:.3f}")
        logger.info(f"Resultados en: {self.output_dir}")
        logger.info("=" * 60)

        return self.training_results


def load_run_config(path: str) -> Dict[str, Any]:
    """
    Leer un JSON de ejecución:
    {"ensemble_id", "members": [...], "weights", "combining_method", "settings"}
    """
    with open(path, 'r', encoding='utf-8') as f:
        raw = json.load(f)

    return {
        'ensemble_id': raw.get('ensemble_id', 'risk_ensemble'),
        'member_configs': [MemberModelConfig.from_dict(m) for m in raw.get('members', [])] or None,
        'weights': raw.get('weights'),
        'combining_method': raw.get('combining_method', WEIGHTED_AVERAGE),
        'settings': EnsembleSettings.from_dict(raw.get('settings'))
    }


def main(argv: Optional[List[str]] = None):
    """
    Función principal para ejecutar el entrenamiento completo del ensemble.
    """
    parser = argparse.ArgumentParser(description='Entrenamiento del Ensemble de Riesgo Crediticio')
    parser.add_argument('--data', default=None, help='CSV con features y risk_score')
    parser.add_argument('--config', default=None, help='JSON de configuración del ensemble')
    parser.add_argument('--output-dir', default='results/ensemble_model')
    parser.add_argument('--method', default=None, choices=VALID_COMBINING_METHODS)
    parser.add_argument('--samples', type=int, default=10000)
    parser.add_argument('--random-state', type=int, default=42)
    args = parser.parse_args(argv)

    run_config = load_run_config(args.config) if args.config else {
        'ensemble_id': 'risk_ensemble',
        'member_configs': None,
        'weights': None,
        'combining_method': WEIGHTED_AVERAGE,
        'settings': EnsembleSettings(random_state=args.random_state)
    }
    settings = run_config.pop('settings')
    if args.method:
        run_config['combining_method'] = args.method

    trainer = EnsembleRiskTrainer(
        data_path=args.data,
        output_dir=args.output_dir,
        n_samples=args.samples,
        settings=settings,
        random_state=args.random_state
    )
    results = trainer.run_complete_training(**run_config)

    logger.info("¡Entrenamiento del ensemble completado!")
    return results


if __name__ == "__main__":
    main()
