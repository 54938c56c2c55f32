"""
Logging del Ensemble de Riesgo
==============================

Un único punto de configuración para el ensemble, sus modelos miembro y
el trainer. La primera petición de logger instala los handlers del root:
consola en stdout y archivo diario sólo con errores.

El directorio de logs sale de CREDIT_LOG_DIR (por defecto ./logs).
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Any

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'
NOISY_LIBRARIES = ('sklearn', 'matplotlib', 'joblib', 'PIL')


class CreditLogger:
    """Fábrica de loggers y formatos comunes de mensajes"""

    _loggers: Dict[str, logging.Logger] = {}
    _configured = False

    @classmethod
    def get_logger(cls, name: str, level: str = "INFO") -> logging.Logger:
        """
        Logger con nombre, instalando los handlers la primera vez.

        Args:
            name: Nombre del logger (model.*, trainer.* o módulo)
            level: DEBUG, INFO, WARNING o ERROR
        """
        if name in cls._loggers:
            return cls._loggers[name]

        if not cls._configured:
            cls._install_handlers()
            cls._configured = True

        logger = logging.getLogger(name)
        logger.setLevel(getattr(logging, level.upper()))
        cls._loggers[name] = logger
        return logger

    @classmethod
    def _install_handlers(cls):
        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt='%H:%M:%S')

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(formatter)

        log_dir = Path(os.environ.get("CREDIT_LOG_DIR", "logs"))
        log_dir.mkdir(parents=True, exist_ok=True)
        error_file = log_dir / f"credit_errors_{datetime.now().strftime('%Y%m%d')}.log"

        error_handler = logging.FileHandler(error_file, mode='a', encoding='utf-8')
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)

        root_logger = logging.getLogger()
        root_logger.addHandler(console_handler)
        root_logger.addHandler(error_handler)
        root_logger.setLevel(logging.INFO)

        for library in NOISY_LIBRARIES:
            logging.getLogger(library).setLevel(logging.ERROR)

    @classmethod
    def log_model_complete(cls, logger: logging.Logger, model_name: str,
                           duration: float, metrics: Dict[str, float]):
        """Cierre de entrenamiento: duración y métricas en una línea"""
        metric_str = " | ".join(f"{k}={v:.3f}" for k, v in metrics.items())
        logger.info(f"Completado {model_name} | Duración: {duration:.1f}s | {metric_str}")

    @classmethod
    def log_data_info(cls, logger: logging.Logger, data_info: Dict[str, Any]):
        logger.info(f"Datos cargados: {data_info.get('total_records', 0)} registros")
        if 'source' in data_info:
            logger.info(f"Origen: {data_info['source']}")

    @classmethod
    def log_warning(cls, logger: logging.Logger, warning_msg: str):
        logger.warning(f"Advertencia: {warning_msg}")


def configure_model_logging(model_name: str, verbose: bool = False) -> logging.Logger:
    """Logger de un modelo miembro (DEBUG sólo con verbose)"""
    return CreditLogger.get_logger(f"model.{model_name}", "DEBUG" if verbose else "INFO")


def configure_trainer_logging(trainer_name: str) -> logging.Logger:
    return CreditLogger.get_logger(f"trainer.{trainer_name}")
