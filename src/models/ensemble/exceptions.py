"""
Excepciones Personalizadas del Ensemble de Riesgo
=================================================

Excepciones específicas para validación de configuración,
fallos de modelos miembro y fallos compuestos del ensemble.
"""

from typing import Optional, Dict, Any


class CreditModelError(Exception):
    """Excepción base para errores del sistema de predicción de riesgo."""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        """
        Inicializa la excepción.

        Args:
            message: Mensaje de error
            error_code: Código de error específico
            details: Detalles adicionales del error
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.error_code:
            base_msg = f"[{self.error_code}] {base_msg}"
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            base_msg = f"{base_msg} | {details_str}"
        return base_msg


class ValidationError(CreditModelError):
    """Excepción para violaciones de las reglas de configuración."""

    def __init__(self, message: str, field: Optional[str] = None,
                 actual_value: Optional[Any] = None):
        """
        Inicializa la excepción de validación.

        Args:
            message: Mensaje de error
            field: Regla o campo que falló la validación
            actual_value: Valor recibido
        """
        details = {}
        if field:
            details['field'] = field
        if actual_value is not None:
            details['actual_value'] = str(actual_value)[:100]

        super().__init__(message, "VALIDATION_ERROR", details)
        self.field = field
        self.actual_value = actual_value


class MemberModelError(CreditModelError):
    """Excepción para fallos de un modelo miembro individual."""

    def __init__(self, message: str, model_id: Optional[str] = None):
        details = {'model_id': model_id} if model_id else {}
        super().__init__(message, "MODEL_ERROR", details)
        self.model_id = model_id


class EnsembleModelError(CreditModelError):
    """
    Excepción compuesta del ensemble.

    Envuelve el fallo de un modelo miembro durante inicialización,
    entrenamiento o predicción, conservando el id del ensemble.
    """

    def __init__(self, message: str, ensemble_id: Optional[str] = None,
                 member_message: Optional[str] = None):
        details = {}
        if ensemble_id:
            details['ensemble_id'] = ensemble_id

        full_message = f"{message}: {member_message}" if member_message else message
        super().__init__(full_message, "ENSEMBLE_ERROR", details)
        self.ensemble_id = ensemble_id
        self.member_message = member_message
