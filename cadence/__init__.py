"""cadence core library: item lifecycle, recurrence and time tracking.

Public API re-exports for convenient imports:
    from cadence import LifecycleManager, open_store, load_settings, ...
"""

# Errors
from cadence.errors import (
    CadenceError,
    ItemNotFound,
    InvalidItem,
    InvalidRecurrence,
    InvalidTimezone,
    AlreadyRunning,
    NotRunning,
    SnapshotError,
    PersistenceFailure,
)

# Clock
from cadence.clock import (
    FixedClock,
    PeriodBounds,
    utc_now,
    parse_instant,
    format_instant,
    parse_due,
    period_bounds,
    period_key_for_deadline,
)

# Models
from cadence.models import (
    TABS,
    CHECKLIST_TABS,
    TIME_TAB,
    STATUS_ACTIVE,
    STATUS_DONE,
    STATUS_MISSED,
    ACTION_TYPES,
    ActionLog,
    AppState,
    Category,
    ChecklistItem,
    Item,
    RecurrenceSettings,
    Settings,
    Subcategory,
    TimeItem,
)

# Engines
from cadence.recurrence import (
    advance,
    normalize_recurrence,
    format_title_with_period,
    parse_title_period,
)
from cadence.status import derive_status, refresh_status, item_urgency, urgency, urgency_with_work
from cadence.categories import CategoryIndex, default_categories
from cadence.cleanup import CleanupStats, build_cleanup_stats
from cadence.insight import InsightPeriod, InsightStats, build_insight_stats, insight_period

# Snapshot & storage
from cadence.snapshot import serialize, deserialize, merge_states
from cadence.storage import SnapshotStore

# Workspace
from cadence.workspace import (
    workspace_root,
    settings_path,
    snapshot_path,
    load_settings,
    save_settings,
    open_store,
)

from cadence.lifecycle import LifecycleManager
