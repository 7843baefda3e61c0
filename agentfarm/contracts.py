"""Versioned contract identifiers for project config and stop reports."""

STOP_OUTCOME_SCHEMA_V1 = "stop_outcome.v1"
ERROR_SCHEMA_V1 = "error.v1"
CONFIG_SCHEMA_V1 = "af_config.v1"

SUPPORTED_CONFIG_SCHEMAS = {
    CONFIG_SCHEMA_V1,
}
