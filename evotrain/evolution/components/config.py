"""
配置載入

JSON configuration files for ``create_evolution_engine``.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Any

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

KNOWN_SECTIONS = ('population', 'evolution', 'selection', 'speciation', 'operations',
                  'score_adjusters', 'validators', 'handlers')


def load_config(config_path) -> Dict[str, Any]:
    """
    載入配置文件

    Args:
        config_path: 配置文件路徑

    Returns:
        配置字典

    Raises:
        FileNotFoundError: 如果文件不存在
        ConfigurationError: 如果內容不是合法的 JSON 物件
    """
    logger.info(f"📄 載入配置文件: {config_path}")

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"配置文件不存在: {config_path}")

    with open(config_file, 'r', encoding='utf-8') as f:
        try:
            config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"無法解析配置文件 {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigurationError(f"配置文件必須是 JSON 物件: {config_path}")

    unknown = [key for key in config if key not in KNOWN_SECTIONS]
    if unknown:
        logger.warning(f"忽略未知的配置部分: {unknown}")

    return config
