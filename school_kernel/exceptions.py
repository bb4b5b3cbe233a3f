"""
Typed Exception Hierarchy for the records migration.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The migration runs unattended against incomplete legacy data. Operators and
tests need to tell a phase-killing failure (the database went away, a
prerequisite mapping is missing) from a per-row problem that is recorded and
skipped (an unparsable grade, a discipline nobody can resolve). Catching by
type, not by message, keeps that distinction reliable.

Every exception:
  1. Has a CODE class attribute (machine-readable, printed in summaries)
  2. Carries structured DATA as attributes (not just a message string)
  3. Declares whether it is FATAL for the phase that raised it

===============================================================================
HIERARCHY
===============================================================================

MigrationError
    |
    +-- MissingPrerequisiteError      (fatal)
    |   +-- MissingSourceFileError
    |   +-- PhaseOrderError
    |
    +-- UnresolvedEntityError         (recorded, never fatal)
    +-- ParseFailureError             (row skipped, never fatal)
    +-- IntegrityViolationError       (fatal)
    +-- ConnectivityFailureError      (fatal)
    +-- UnexpectedFailureError        (fatal)
    +-- MigrationLockedError          (fatal)
    +-- ConfigurationError            (fatal, usage error)

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                   | When Raised
-----------------------|------------------------------------------------------
MISSING_PREREQUISITE   | Required upstream identity or mapping absent
MISSING_SOURCE_FILE    | Extract file does not exist
PHASE_ORDER            | A prerequisite phase has never committed
UNRESOLVED_ENTITY      | No mapping for a legacy key (recorded, skipped)
PARSE_FAILURE          | Malformed numeric or label value (row skipped)
INTEGRITY_VIOLATION    | A constraint or column type rejected a write
CONNECTIVITY_FAILURE   | I/O or database error
UNEXPECTED_FAILURE     | Any other error escaping a phase
MIGRATION_LOCKED       | Another run holds the migration lock
INVALID_CONFIGURATION  | Config file missing, malformed or inconsistent

===============================================================================
HANDLING PATTERNS
===============================================================================

1. PER-ROW ERRORS ARE COUNTED, NOT RAISED OUT OF THE PHASE:

    try:
        value = parse_grade(raw)
    except ParseFailureError as e:
        result.skip(e)
        continue

2. PHASE BOUNDARY TRANSLATES INFRASTRUCTURE ERRORS:

    except IntegrityError as e:
        raise IntegrityViolationError(phase, str(e.orig)) from e
"""


class MigrationError(Exception):
    """
    Base exception for all migration errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification, and a `fatal` flag telling the phase runner
    whether the phase must be rolled back.
    """

    code: str = "MIGRATION_ERROR"
    fatal: bool = True


# Fatal: prerequisites


class MissingPrerequisiteError(MigrationError):
    """A required upstream identity or mapping is absent."""

    code: str = "MISSING_PREREQUISITE"

    def __init__(self, prerequisite: str, detail: str = ""):
        self.prerequisite = prerequisite
        self.detail = detail
        message = f"Missing prerequisite: {prerequisite}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class MissingSourceFileError(MissingPrerequisiteError):
    """A legacy extract file does not exist."""

    code: str = "MISSING_SOURCE_FILE"

    def __init__(self, extract: str, path: str):
        self.extract = extract
        self.path = path
        super().__init__(f"source file for extract {extract!r}", path)


class PhaseOrderError(MissingPrerequisiteError):
    """A phase was started before the phases it depends on committed."""

    code: str = "PHASE_ORDER"

    def __init__(self, phase: str, missing_phases: tuple[str, ...]):
        self.phase = phase
        self.missing_phases = missing_phases
        super().__init__(
            f"committed run of {', '.join(missing_phases)}",
            f"required before {phase}",
        )


# Non-fatal: recorded per entity / row


class UnresolvedEntityError(MigrationError):
    """
    No target entity could be chosen for a legacy key.

    Never fatal: the key is recorded in the mapping table with a null
    target and excluded from every downstream join.
    """

    code: str = "UNRESOLVED_ENTITY"
    fatal: bool = False

    def __init__(self, entity_kind: str, old_key: str, label: str | None = None, match_type: str = "not_found"):
        self.entity_kind = entity_kind
        self.old_key = old_key
        self.label = label
        self.match_type = match_type
        shown = f"{old_key} ({label})" if label and label != old_key else old_key
        super().__init__(f"Unresolved {entity_kind}: {shown} [{match_type}]")


class ParseFailureError(MigrationError):
    """A numeric or label value could not be parsed. The row is skipped."""

    code: str = "PARSE_FAILURE"
    fatal: bool = False

    def __init__(self, field: str, raw_value: object, reason: str = ""):
        self.field = field
        self.raw_value = raw_value
        self.reason = reason
        message = f"Cannot parse {field}: {raw_value!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


# Fatal: infrastructure


class IntegrityViolationError(MigrationError):
    """A constraint or column type rejected a write that should have succeeded."""

    code: str = "INTEGRITY_VIOLATION"

    def __init__(self, phase: str, detail: str):
        self.phase = phase
        self.detail = detail
        super().__init__(f"Integrity violation in phase {phase}: {detail}")


class ConnectivityFailureError(MigrationError):
    """I/O or database connectivity error."""

    code: str = "CONNECTIVITY_FAILURE"

    def __init__(self, phase: str, detail: str):
        self.phase = phase
        self.detail = detail
        super().__init__(f"Connectivity failure in phase {phase}: {detail}")


class UnexpectedFailureError(MigrationError):
    """A phase failed with an error outside the typed hierarchy."""

    code: str = "UNEXPECTED_FAILURE"

    def __init__(self, phase: str, detail: str):
        self.phase = phase
        self.detail = detail
        super().__init__(f"Unexpected failure in phase {phase}: {detail}")


class MigrationLockedError(MigrationError):
    """Another migration run holds the lock."""

    code: str = "MIGRATION_LOCKED"

    def __init__(self, holder_run_id: str, holder_phase: str):
        self.holder_run_id = holder_run_id
        self.holder_phase = holder_phase
        super().__init__(
            f"Migration locked by run {holder_run_id} (phase {holder_phase})"
        )


class ConfigurationError(MigrationError):
    """Migration configuration is missing, malformed or inconsistent."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        super().__init__(message if key is None else f"{message} (key: {key})")
