"""Well-known registry keys and column names.

The registry keys form the read contract for renderers and other external
consumers of the status registry, so their spelling is part of the wire
format and must not change.
"""

from typing import Final


class RegistryKeys:
    """Keys of the status registry."""

    STATUS: Final = "status"

    # Members of the STATUS group
    SERIAL: Final = "serial"
    STATE: Final = "state"
    ERROR: Final = "error"
    TARGET_DIRECTORY: Final = "targetDirectory"
    FILES: Final = "files"
    VALIDATION_MESSAGES: Final = "validationMessages"
    BUNCHES: Final = "bunches"
    FAILED_BUNCHES: Final = "failedBunches"


class ColumnKeys:
    """Column names with a predefined meaning."""

    ADDITIONAL_ATTRIBUTES: Final = "additional_attributes"
    SOURCE_FILE: Final = "source_file"
    SOURCE_LINE: Final = "source_line"


VALIDATIONS_FILENAME: Final = "validations.json"
