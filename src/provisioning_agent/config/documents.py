"""
Typed agent configuration documents and their YAML serialization.

The documents are pure functions of the request, the platform profile, the
hostname and the version tag; file I/O lives in :mod:`.writer`.
"""
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

from ..core.request import ProvisioningRequest

APM_RECEIVER_PORT = 8126
DOGSTATSD_PORT = 8125
JMX_CHECK_PERIOD_MS = 15000
OTLP_GRPC_ENDPOINT = "0.0.0.0:4317"
OTLP_HTTP_ENDPOINT = "0.0.0.0:4318"

MAIN_LOG_START_PATTERN = r"\d{4}\-(0?[1-9]|1[012])\-(0?[1-9]|[12][0-9]|3[01])"
SOURCE_LOG_START_PATTERN = r"\d{4}-\d{2}-\d{2}"

LOG_SOURCE = "nodejs"
LOG_SOURCE_CATEGORY = "sourcecode"


class ProcessingRule(BaseModel):
    type: str = "multi_line"
    name: str
    pattern: str


class ApmConfig(BaseModel):
    enabled: bool = True
    env: str
    receiver_port: int = APM_RECEIVER_PORT
    apm_non_local_traffic: bool = True
    max_traces_per_second: int = 10
    trace_buffer: int = 5000


class Toggle(BaseModel):
    enabled: bool


class ProcessConfig(BaseModel):
    # The agent reads this flag as a string.
    enabled: str = "true"


class LogsConfig(BaseModel):
    container_collect_all: bool = False
    processing_rules: List[ProcessingRule] = Field(
        default_factory=lambda: [ProcessingRule(name="log_start_with_date", pattern=MAIN_LOG_START_PATTERN)]
    )


class DogstatsdConfig(BaseModel):
    enabled: bool = True
    bind_host: str = "0.0.0.0"
    port: int = DOGSTATSD_PORT


class Endpoint(BaseModel):
    endpoint: str


class OtlpProtocols(BaseModel):
    grpc: Endpoint = Field(default_factory=lambda: Endpoint(endpoint=OTLP_GRPC_ENDPOINT))
    http: Endpoint = Field(default_factory=lambda: Endpoint(endpoint=OTLP_HTTP_ENDPOINT))


class OtlpReceiver(BaseModel):
    protocols: OtlpProtocols = Field(default_factory=OtlpProtocols)


class OtlpConfig(BaseModel):
    receiver: OtlpReceiver = Field(default_factory=OtlpReceiver)


class MainAgentConfig(BaseModel):
    """The agent's ``datadog.yaml``."""
    api_key: str
    site: str
    hostname: str
    tags: List[str]
    apm_config: ApmConfig
    process_config: ProcessConfig = Field(default_factory=ProcessConfig)
    network_config: Toggle = Field(default_factory=lambda: Toggle(enabled=True))
    logs_enabled: bool = True
    logs_config: LogsConfig = Field(default_factory=LogsConfig)
    dogstatsd_config: DogstatsdConfig = Field(default_factory=DogstatsdConfig)
    jmx_check_period: int = JMX_CHECK_PERIOD_MS
    inventories_configuration_enabled: bool = True
    inventories_checks_configuration_enabled: bool = True
    compliance_config: Toggle = Field(default_factory=lambda: Toggle(enabled=False))
    otlp_config: OtlpConfig = Field(default_factory=OtlpConfig)


class LogSource(BaseModel):
    type: str = "file"
    path: str
    service: str
    source: str = LOG_SOURCE
    sourcecategory: str = LOG_SOURCE_CATEGORY
    tags: List[str]
    log_processing_rules: List[ProcessingRule]


class IntegrationInstance(BaseModel):
    host: str = "localhost"
    port: int
    tags: List[str]


class LogsIntegrationConfig(BaseModel):
    """The Node.js integration's ``conf.d/nodejs.d/conf.yaml``."""
    logs: List[LogSource]
    init_config: Optional[Dict[str, Any]] = None
    instances: List[IntegrationInstance]


def base_tags(request: ProvisioningRequest) -> List[str]:
    return [f"env:{request.environment.value}", f"service:{request.service_name}"]


def build_main_config(request: ProvisioningRequest, hostname: str, version: str = "1.0.0") -> MainAgentConfig:
    return MainAgentConfig(
        api_key=request.secret,
        site=request.site.value,
        hostname=hostname,
        tags=base_tags(request) + [f"version:{version}"],
        apm_config=ApmConfig(env=request.environment.value),
    )


def _log_source(request: ProvisioningRequest, stream: str, level: str) -> LogSource:
    return LogSource(
        path=f"{request.logs_dir}/{stream}*.log",
        service=request.service_name,
        tags=base_tags(request) + [f"log_level:{level}"],
        log_processing_rules=[
            ProcessingRule(name=f"{stream}_log_start_with_date", pattern=SOURCE_LOG_START_PATTERN)
        ],
    )


def build_logs_config(request: ProvisioningRequest) -> LogsIntegrationConfig:
    return LogsIntegrationConfig(
        logs=[
            _log_source(request, "out", "info"),
            _log_source(request, "error", "error"),
        ],
        instances=[IntegrationInstance(port=request.port, tags=base_tags(request))],
    )


def to_yaml(document: BaseModel, header: Optional[str] = None) -> str:
    """Serialize a document; ``header`` becomes a leading comment line."""
    body = yaml.safe_dump(
        document.model_dump(mode="json"),
        sort_keys=False,
        default_flow_style=False,
    )
    if header:
        return f"# {header}\n{body}"
    return body
