"""Constants for Gatekeeper"""

from pathlib import Path

# Version info
APP_VERSION = "1.4.2"
BUILD_DATE = "Oct 2026"

BOT_DESCRIPTION = "Membership Gate & Application Review"

# Application lifecycle
OPEN_STATUSES = ('submitted', 'needs_info')
CLAIMABLE_STATUSES = OPEN_STATUSES
TERMINAL_STATUSES = ('approved', 'rejected', 'kicked')

# Role Configuration
REVIEWER_ROLES = ['Gatekeeper', 'Moderator', 'Admin']
ADMIN_ROLES = ['Admin']

# Review Settings
REVIEW_SETTINGS = {
    'SHORT_CODE_LENGTH': 6,             # Hex digits shown to moderators
    'REAPPLY_COOLDOWN_HOURS': 720,      # 30 days after a non-permanent rejection
    'HISTORY_LIMIT': 4,                 # Actions shown under an application
    'ACTOR_HISTORY_LIMIT': 20,          # Actions shown by /modhistory
    'LISTOPEN_PAGE_SIZE': 10,
    'REASON_MAX_LENGTH': 1000,
    'STATUS_FEED_LENGTH': 100           # Entries kept per guild in the status feed
}

# Cache Settings
CACHE_SETTINGS = {
    'OPEN_APPS_TTL': 300,         # 5 minutes, upper bound on staleness if an invalidation is lost
    'REDIS_TIMEOUT': 5,          # Redis operation timeout in seconds
    'REDIS_RETRY_COUNT': 3,      # Number of retries for Redis operations
    'REDIS_RETRY_DELAY': 1       # Delay between retries in seconds
}

# Redis key templates
REDIS_KEYS = {
    'OPEN_APPS': 'open_apps:{guild_id}:{generation}',
    'OPEN_APPS_GENERATION': 'open_apps_gen:{guild_id}',
    'STATUS_FEED': 'status_changes:{guild_id}'
}

# Database Settings
DB_SETTINGS = {
    'POOL_SIZE': 20,
    'MAX_OVERFLOW': 10,
    'POOL_TIMEOUT': 30,
    'POOL_RECYCLE': 1800,
    'ECHO': False,
    'SQLITE_BUSY_TIMEOUT': 15    # Seconds a SQLite writer waits for the lock
}

# Bot Configuration
BOT_REQUIRED_PERMISSIONS = [
    'view_channel',
    'send_messages',
    'read_message_history',
    'kick_members',
    'manage_roles'
]

# Path Configuration
BASE_DIR = Path(__file__).resolve().parent.parent.parent
LOG_DIR = BASE_DIR / "logs"

# Review messages
REVIEW_MESSAGES = {
    'CLAIM': {
        'OK': "✅ You claimed application `{code}`.",
        'ALREADY_CLAIMED': "❌ Application `{code}` is already claimed by <@{reviewer}>.",
        'ALREADY_YOURS': "ℹ️ You already hold the claim on application `{code}`.",
        'INVALID_STATUS': "❌ Application `{code}` is `{status}` and cannot be claimed.",
        'APP_NOT_FOUND': "❌ Application not found."
    },
    'UNCLAIM': {
        'OK': "✅ Application `{code}` unclaimed.",
        'NOT_CLAIMED': "ℹ️ Application `{code}` is not claimed.",
        'NOT_OWNER': "❌ Application `{code}` is claimed by <@{reviewer}>. Only they can unclaim it.",
        'APP_NOT_FOUND': "❌ Application not found."
    },
    'DECISION': {
        'approve': "✅ Application `{code}` approved.",
        'reject': "✅ Application `{code}` rejected.",
        'permanent_reject': "⛔ Application `{code}` permanently rejected. The applicant cannot reapply.",
        'kick': "👢 Application `{code}` marked as kicked.",
        'needs_info': "📝 Application `{code}` moved to needs info.",
        'ALREADY': "ℹ️ Application `{code}` is already `{status}`. Nothing was changed.",
        'INVALID': "❌ Application `{code}` is `{status}`; that action is not available.",
        'NOT_FOUND': "❌ Application not found."
    },
    'UNBLOCK': {
        'OK': "✅ Permanent rejection lifted for application `{code}`.",
        'NOT_BLOCKED': "ℹ️ Application `{code}` is not permanently rejected.",
        'APP_NOT_FOUND': "❌ Application not found."
    },
    'REAPPLY': {
        'ALLOWED': "✅ <@{user}> may submit a new application.",
        'PERMANENTLY_REJECTED': "⛔ <@{user}> is permanently rejected and cannot reapply.",
        'PENDING_APPLICATION': "ℹ️ <@{user}> already has an application under review.",
        'COOLDOWN': "⏳ <@{user}> may reapply <t:{retry_at}:R>."
    },
    'CLAIM_WARNING': "⚠️ This application is claimed by <@{reviewer}>. Your action was still recorded.",
    'NO_PERMISSION': "❌ Only reviewers can use this command.",
    'BAD_REQUEST': "❌ {error}",
    'STORAGE_ERROR': "❌ The review database is unavailable right now. Please retry in a moment.",
    'UNEXPECTED_ERROR': "❌ An error occurred while processing the command."
}

# Command Help
COMMAND_HELP = {
    'reviewer': [
        ('/claim', 'Claim an application for review'),
        ('/unclaim', 'Release your claim on an application'),
        ('/accept', 'Approve an application'),
        ('/reject', 'Reject an application (optionally permanently)'),
        ('/kick', 'Mark an application as kicked'),
        ('/needinfo', 'Ask the applicant for more information'),
        ('/listopen', 'List open applications'),
        ('/apphistory', 'Show recent actions on an application'),
        ('/reapply-check', 'Check whether a user may reapply')
    ],
    'admin': [
        ('/unblock', 'Lift a permanent rejection'),
        ('/force-unclaim', 'Release a claim held by another reviewer'),
        ('/modhistory', "Show a moderator's recent review actions")
    ]
}
