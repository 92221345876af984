from .db import (
    get_session,
    configure_engine,
    create_all,
    dispose_engine,
    get_active_settings,
    update_settings,
    add_client,
    get_contact_channels,
    get_applicable_types,
    find_eligible,
    mark_reminder_sent,
    reset_tier_sent_flags,
    set_received,
    record_event,
    fetch_events,
    create_month_records,
    cleanup_duplicate_records,
    fetch_month_records,
)  # noqa: F401
