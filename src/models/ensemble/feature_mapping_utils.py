"""
Funciones de Mapeo de Features para Ensemble

Esquema único de 12 features numéricas compartido por el mapeo
directo (fila -> mapa con nombre) y el inverso (mapa -> vector).
"""

import math
from collections import namedtuple
from typing import Dict, List, Sequence, Any

import numpy as np
import pandas as pd

FeatureField = namedtuple('FeatureField', ['key', 'display_name', 'high_description', 'low_description'])

FEATURE_SCHEMA = (
    FeatureField('defiReliabilityScore', 'DeFi Reliability Score',
                 'Strong DeFi track record', 'Limited DeFi reliability history'),
    FeatureField('tradingConsistencyScore', 'Trading Consistency Score',
                 'Consistent trading patterns', 'Irregular trading behavior'),
    FeatureField('stakingCommitmentScore', 'Staking Commitment Score',
                 'Strong staking commitment', 'Limited staking activity'),
    FeatureField('governanceParticipationScore', 'Governance Participation Score',
                 'Active governance participation', 'Low governance engagement'),
    FeatureField('liquidityProviderScore', 'Liquidity Provider Score',
                 'Significant liquidity provision', 'Limited LP activity'),
    FeatureField('totalTransactionVolume', 'Total Transaction Volume',
                 'High transaction volume', 'Low transaction volume'),
    FeatureField('averageTransactionSize', 'Average Transaction Size', None, None),
    FeatureField('transactionFrequency', 'Transaction Frequency', None, None),
    FeatureField('protocolDiversification', 'Protocol Diversification', None, None),
    FeatureField('historicalDefaultRate', 'Historical Default Rate', None, None),
    FeatureField('marketVolatility', 'Market Volatility',
                 'High market volatility period', 'Stable market conditions'),
    FeatureField('liquidityRatio', 'Liquidity Ratio', None, None),
)

FEATURE_NAMES: List[str] = [f.key for f in FEATURE_SCHEMA]
N_FEATURES = len(FEATURE_SCHEMA)

_FIELDS_BY_KEY = {f.key: f for f in FEATURE_SCHEMA}


def _clean_value(value: Any) -> float:
    """Valores ausentes, nulos o no finitos cuentan como 0"""
    if value is None:
        return 0.0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def row_to_features(row: Sequence[float]) -> Dict[str, float]:
    """
    Convertir una fila cruda al mapa de features con nombre

    Las posiciones que falten en la fila se rellenan con 0.
    """
    features = {}
    for index, feature_field in enumerate(FEATURE_SCHEMA):
        value = row[index] if index < len(row) else None
        features[feature_field.key] = _clean_value(value)
    return features


def features_to_array(features: Dict[str, Any]) -> np.ndarray:
    """
    Convertir un mapa de features al vector ordenado del esquema
    """
    return np.array([_clean_value(features.get(key)) for key in FEATURE_NAMES], dtype=float)


def dataframe_to_rows(df: pd.DataFrame) -> np.ndarray:
    """
    Extraer las columnas del esquema de un DataFrame en orden

    Columnas faltantes se generan con 0 y se limpian inf/NaN.
    """
    result_df = pd.DataFrame(index=df.index)
    for key in FEATURE_NAMES:
        result_df[key] = df[key] if key in df.columns else 0.0

    result_df = result_df.apply(pd.to_numeric, errors='coerce')
    result_df = result_df.replace([np.inf, -np.inf], 0).fillna(0)
    return result_df.to_numpy(dtype=float)


def get_display_name(key: str) -> str:
    return _FIELDS_BY_KEY[key].display_name


def describe_feature(key: str, value: float) -> str:
    """Descripción textual de una feature según su valor"""
    feature_field = _FIELDS_BY_KEY.get(key)
    if feature_field is None or feature_field.high_description is None:
        name = feature_field.display_name if feature_field else key
        return f"{name}: {value}"
    return feature_field.high_description if value > 500 else feature_field.low_description
