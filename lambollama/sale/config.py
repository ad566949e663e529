import os
import configparser
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from lambollama.sale.core.bonus import parse_tiers
from lambollama.sale.database.manager import DEFAULT_DATABASE_URL
from lambollama.sale.errors import InvalidInput

logger = logging.getLogger(__name__)

DEFAULT_BONUS_TIERS_TEXT = "15:40,45:30,90:15"
DEFAULT_VESTING_PERIOD = 180 * 24 * 60 * 60

CONFIG_SECTION = "Sale"

# Environment variable -> (config key, parser)
ENV_VARS = {
    "LAMBOLLAMA_DATABASE_URL": ("database_url", str),
    "LAMBOLLAMA_BONUS_TIERS": ("bonus_tiers", str),
    "LAMBOLLAMA_PRESALE_VESTING_DURATION": ("presale_vesting_duration", int),
    "LAMBOLLAMA_AIRDROP_VESTING_PERIOD": ("airdrop_vesting_period", int),
}


def _default_config():
    return {
        "database_url": DEFAULT_DATABASE_URL,
        "bonus_tiers": DEFAULT_BONUS_TIERS_TEXT,
        "presale_vesting_duration": DEFAULT_VESTING_PERIOD,
        "airdrop_vesting_period": DEFAULT_VESTING_PERIOD,
    }


def _read_config_file(config_file: Path, defaults: dict) -> dict:
    """Parse a config file as JSON, falling back to INI with a [Sale] section."""
    try:
        with open(config_file, "r") as f:
            return json.load(f)
    except json.JSONDecodeError:
        config_parser = configparser.ConfigParser()
        config_parser.read(config_file)
        if CONFIG_SECTION not in config_parser:
            logger.warning(f"No [{CONFIG_SECTION}] section in {config_file}")
            return {}
        section = config_parser[CONFIG_SECTION]
        return {
            "database_url": section.get("database_url", defaults["database_url"]),
            "bonus_tiers": section.get("bonus_tiers", defaults["bonus_tiers"]),
            "presale_vesting_duration": section.getint(
                "presale_vesting_duration", defaults["presale_vesting_duration"]
            ),
            "airdrop_vesting_period": section.getint(
                "airdrop_vesting_period", defaults["airdrop_vesting_period"]
            ),
        }


def load_sale_config(config_override=None):
    """
    Load sale configuration from multiple sources with precedence.

    Precedence:
    1. Environment Variables (LAMBOLLAMA_*), including a .env file
    2. `config_override` dictionary (if provided)
    3. Config file (JSON or INI) in ./config/sale.cfg or ./sale.cfg
    4. Config file (JSON or INI) in ~/.lambollama/sale.cfg
    5. Default values

    Args:
        config_override: Optional dictionary to override loaded config.

    Returns:
        dict: The final sale configuration.
    """
    load_dotenv()
    config = _default_config()

    config_files = [
        Path("./config/sale.cfg"),
        Path("./sale.cfg"),
        Path.home() / ".lambollama" / "sale.cfg",
    ]

    for config_file in config_files:
        if not config_file.exists():
            continue
        try:
            file_config = _read_config_file(config_file, config)
        except (OSError, configparser.Error, ValueError) as e:
            logger.error(f"Error reading sale config file {config_file}: {e}")
            continue
        config.update(file_config)
        logger.info(f"Loaded sale config from: {config_file}")
        break

    if config_override and isinstance(config_override, dict):
        config.update(config_override)
        logger.debug(f"Sale config updated with override dict: {config_override}")

    env_config = {}
    for env_var, (key, parse) in ENV_VARS.items():
        value = os.environ.get(env_var)
        if not value:
            continue
        try:
            env_config[key] = parse(value)
        except ValueError:
            logger.warning(f"Invalid {env_var} environment variable. Using default/config value.")

    if env_config:
        config.update(env_config)
        logger.info(f"Sale config updated with environment variables: {list(env_config.keys())}")

    for key in ("presale_vesting_duration", "airdrop_vesting_period"):
        if int(config[key]) <= 0:
            raise InvalidInput(f"{key} must be positive, got {config[key]}")
        config[key] = int(config[key])

    logger.debug(f"Final sale config: {config}")
    return config


def bonus_tiers_from_config(config) -> tuple:
    """Parsed threshold table of a loaded config."""
    tiers = config["bonus_tiers"]
    if isinstance(tiers, str):
        return parse_tiers(tiers)
    # JSON files may carry [[ceiling_ether, percent], ...]
    return parse_tiers(",".join(f"{ceiling}:{percent}" for ceiling, percent in tiers))

