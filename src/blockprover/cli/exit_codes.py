"""Process exit codes for the blockprover CLI."""

EXIT_OK = 0
EXIT_JOB_FAILED = 1
EXIT_CONFIG = 2
EXIT_MALFORMED = 3
EXIT_NOT_READY = 4
EXIT_CANCELLED = 130
