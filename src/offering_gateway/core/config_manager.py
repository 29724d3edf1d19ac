# Configuration management
from typing import Any, Dict, List, Optional
import traceback
import yaml
from pydantic import BaseModel, Field, ValidationError
from ..utils.exceptions import ConfigurationError


class ApiConfig(BaseModel):
    """Proxy API server configuration"""
    host: str = Field("0.0.0.0", description="Interface the proxy API binds to")
    port: int = Field(8080, description="Port the proxy API listens on")
    public_url: Optional[str] = Field(None, description="Base URL announced in offering endpoints")

    @property
    def base_uri(self) -> str:
        if self.public_url:
            return self.public_url.rstrip('/')
        return f"http://{self.host}:{self.port}"


class GatewayOptions(BaseModel):
    """How Things are exposed through gateway routes"""
    use_merge: bool = Field(False, description="Add one route merging every property of a Thing")
    use_aggregate: bool = Field(False, description="Expose identical Things behind shared routes")
    use_property_filters: bool = Field(False, description="Offer min_/max_ filters on aggregated merged routes")
    request_timeout: float = Field(10.0, gt=0, description="Timeout in seconds for each request to a Thing")
    more_logs: bool = Field(False, description="Log compatibility analysis details")


class HistoryConfig(BaseModel):
    enabled: bool = Field(False, description="Serve read routes from sampled history")
    period: float = Field(60.0, gt=0, description="Sampling period in seconds")
    limit: int = Field(100, gt=0, description="Records kept per route")
    database: str = Field("history.db", description="SQLite file holding history records")
    max_connections: int = Field(5, gt=0)


class AppConfig(BaseModel):
    api: ApiConfig = Field(default_factory=ApiConfig)
    gateway: GatewayOptions = Field(default_factory=GatewayOptions)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    things: List[str] = Field(default_factory=list, description="Paths to Thing Description JSON files")
    logging: Dict[str, Any] = Field(default_factory=dict)


class ConfigManager:
    """Manages configuration loading and validation"""

    REQUIRED_SECTIONS = ['api', 'gateway', 'logging']

    @staticmethod
    def load_config(config_path: str) -> AppConfig:
        """Load and validate configuration from YAML file"""
        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError:
            raise ConfigurationError(f"Error parsing configuration file: {traceback.format_exc()}")
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        if config is None or not isinstance(config, dict):
            raise ConfigurationError("Configuration file is empty or incorrectly formatted")

        missing_sections = [section for section in ConfigManager.REQUIRED_SECTIONS if section not in config]
        if missing_sections:
            raise ConfigurationError(f"Missing required configuration sections: {', '.join(missing_sections)}")

        try:
            return AppConfig(**config)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")
