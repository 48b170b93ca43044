"""Versioned runtime contract identifiers for recorder messages and records."""

NOTIFICATION_SCHEMA_V1 = "notification.v1"
ERROR_SCHEMA_V1 = "error.v1"

REC_STATUS_KEY = "recStatus"
CODE_BLOCKS_KEY = "codeBlocks"
