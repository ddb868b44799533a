from prometheus_client import Counter


dose_actions_total = Counter(
    "dose_actions_total",
    "Dose actions applied, by action and outcome",
    ["action", "outcome"],
)

doses_missed_total = Counter(
    "doses_missed_total",
    "Doses moved to missed by the timeout sweep",
)

stock_deductions_failed_total = Counter(
    "stock_deductions_failed_total",
    "Stock deductions that failed after a dose was marked taken",
)

notifications_scheduled_total = Counter(
    "notifications_scheduled_total",
    "Notifications created, by type",
    ["notification_type"],
)

scheduler_scans_total = Counter(
    "notification_scheduler_scans_total",
    "Total scheduler sweep cycles",
)

notifications_delivered_total = Counter(
    "notifications_delivered_total",
    "Notifications with at least one successful channel",
)

notifications_failed_total = Counter(
    "notifications_failed_total",
    "Notifications where every channel failed",
)

channel_attempts_total = Counter(
    "notification_channel_attempts_total",
    "Per-channel delivery attempts, by channel and outcome",
    ["channel", "outcome"],
)
