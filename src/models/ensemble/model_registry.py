"""
Registro de Modelos del Ensemble
================================

Sistema centralizado para crear, inicializar y gestionar las instancias
vivas de los modelos miembro, indexadas por su id.
"""

import importlib
from typing import Callable, Dict, Any, List, Optional

from config.logging_config import CreditLogger
from .ensemble_config import MemberModelConfig
from .exceptions import MemberModelError
from .member_model import BaseMemberModel

logger = CreditLogger.get_logger(__name__)

ModelFactory = Callable[[MemberModelConfig], BaseMemberModel]


class ModelRegistry:
    """
    Registro que posee en exclusiva las instancias de modelos miembro.

    Las instancias se crean importando dinámicamente la clase declarada
    en la configuración (model_module / model_class) o con una factory
    inyectada.
    """

    def __init__(self, model_factory: Optional[ModelFactory] = None):
        self.model_factory = model_factory
        self._models: Dict[str, BaseMemberModel] = {}

    def _resolve_model_class(self, config: MemberModelConfig):
        """Importa la clase de modelo declarada en la configuración"""
        try:
            module = importlib.import_module(config.model_module)
            model_class = getattr(module, config.model_class)
        except (ImportError, AttributeError) as e:
            raise MemberModelError(
                f"Cannot load model class {config.model_module}.{config.model_class}: {e}",
                config.model_id
            ) from e

        if not issubclass(model_class, BaseMemberModel):
            raise MemberModelError(f"{config.model_class} does not implement BaseMemberModel",
                                   config.model_id)
        return model_class

    def create_model(self, config: MemberModelConfig) -> BaseMemberModel:
        """
        Crear e inicializar una instancia para una configuración

        Args:
            config: Configuración del modelo miembro

        Returns:
            Instancia inicializada (no registrada todavía)
        """
        if self.model_factory is not None:
            model = self.model_factory(config)
        else:
            model = self._resolve_model_class(config)(config)

        model.initialize()
        logger.debug(f"Modelo {config.model_id} creado: {type(model).__name__}")
        return model

    def register(self, model_id: str, model: BaseMemberModel) -> None:
        """Registrar (o reemplazar) la instancia de un id"""
        if model_id in self._models:
            logger.debug(f"Reemplazando instancia existente de {model_id}")
        self._models[model_id] = model

    def get(self, model_id: str) -> BaseMemberModel:
        try:
            return self._models[model_id]
        except KeyError:
            raise MemberModelError(f"Model {model_id} not registered", model_id) from None

    def remove(self, model_id: str) -> Optional[BaseMemberModel]:
        return self._models.pop(model_id, None)

    def clear(self) -> None:
        self._models.clear()

    def replace_all(self, models: Dict[str, BaseMemberModel]) -> None:
        """Reemplazar todas las instancias de una vez"""
        self._models = dict(models)

    def model_ids(self) -> List[str]:
        return list(self._models.keys())

    def items(self):
        return list(self._models.items())

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)

    def get_model_info(self) -> Dict[str, Dict[str, Any]]:
        """Información resumida de cada modelo registrado"""
        info = {}
        for model_id, model in self._models.items():
            info[model_id] = {
                'class': type(model).__name__,
                'name': model.config.name,
                'version': model.config.version,
                'initialized': model.is_initialized,
                'trained': model.is_trained,
                'last_trained': model.config.last_trained,
            }
        return info
