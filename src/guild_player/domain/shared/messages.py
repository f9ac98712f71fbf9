"""Centralized message constants for error messages, log templates, and user feedback."""

from __future__ import annotations


class ErrorMessages:
    """Error messages for exceptions and validation failures."""

    # Discord ID Validation Errors
    INVALID_SNOWFLAKE = "Discord snowflake ID must be positive"
    SNOWFLAKE_TOO_LARGE = "Discord snowflake ID exceeds maximum value (2^64)"

    # Track Validation Errors
    EMPTY_QUERY = "Track query cannot be empty"

    # Queue Errors
    QUEUE_FULL = "Queue is full (max {max_size} tracks)"

    # Session Errors
    SESSION_TERMINATED = "Session for guild {guild_id} has been terminated"
    NO_VOICE_TRANSPORT = "Not connected to a voice channel"
    ILLEGAL_TRANSITION = "Cannot transition from {current} to {target}"

    # Resolver Errors
    RESOLVE_TIMEOUT = "Timed out after {timeout:.0f}s resolving '{query}'"
    RESOLVE_NO_MATCH = "No results found for '{query}'"
    RESOLVE_EMPTY_OUTPUT = "yt-dlp produced no output for '{query}'"
    RESOLVE_MALFORMED_OUTPUT = "yt-dlp produced malformed output for '{query}'"
    RESOLVE_NO_LOCATOR = "No playable stream found for '{query}'"
    RESOLVE_TOOL_FAILED = "yt-dlp exited with code {code}: {stderr}"
    RESOLVE_TOOL_MISSING = "Could not start yt-dlp: {error}"

    # Pipe Errors
    PIPE_SPAWN_FAILED = "Could not start ffmpeg: {error}"
    PIPE_EXITED = "ffmpeg exited with code {code}: {stderr}"
    PIPE_READ_FAILED = "Error reading audio stream: {error}"
    PIPE_STALLED = "No audio received for {timeout:.0f}s"
    STREAM_UNEXPECTED_ERROR = "Audio stream stopped unexpectedly: {error!r}"

    # Resource Errors
    PROCESS_LIMIT_REACHED = "Too many audio processes running (limit {limit})"

    # Transport Errors
    TRANSPORT_SEND_FAILED = "Failed to send audio frame: {error}"

    # Authentication/Security Errors
    DISCORD_TOKEN_REQUIRED = "DISCORD__TOKEN environment variable is required"
    DISCORD_TOKEN_MALFORMED = "DISCORD__TOKEN does not look like a bot token"
    FFMPEG_NOT_FOUND = "ffmpeg executable not found: {path}"
    BOT_NOT_INITIALIZED = "Bot not initialized. Call set_bot() first."
    CONTAINER_NOT_FOUND = "Bot has no container attached"


class LogTemplates:
    """Log message templates for structured logging.

    Use these with logger.info(), logger.error(), etc. and pass values as parameters
    for proper log formatting and structured logging support.
    """

    # Voice Operations
    VOICE_CONNECTED = "Connected to voice channel %s in %s"
    VOICE_DISCONNECTED = "Disconnected from voice in guild %s"
    VOICE_CONNECTION_TIMEOUT = "Timeout connecting to channel %s"
    VOICE_NO_PERMISSION = "No permission to connect to channel %s"
    VOICE_CLIENT_ERROR = "Client error connecting: %r"
    VOICE_SPEAKING_FAILED = "Failed to update speaking state in guild %s: %r"
    VOICE_CALLBACK_ERROR = "Error in voice %s callback for guild %s"
    VOICE_LOST = "Voice connection lost in guild %s, grace period %.0fs"
    VOICE_RESTORED = "Voice connection restored in guild %s"

    # Session Lifecycle
    SESSION_CREATED = "Created playback session for guild %s"
    SESSION_REMOVED = "Removed playback session for guild %s"
    SESSION_TERMINATED = "Terminated playback session for guild %s (reason: %s)"
    SESSION_TRANSITION = "Guild %s: %s -> %s"
    SESSION_CONTROL_ERROR = "Unexpected error in control loop for guild %s"
    SESSION_STALE_MESSAGE = "Ignoring stale %s for guild %s (generation %s != %s)"
    SESSION_TIMER_EXPIRED = "%s timer expired for guild %s"
    SESSION_TRANSPORT_ATTACHED = "Attached voice transport for guild %s"
    REGISTRY_SHUTDOWN = "Stopping %d playback session(s)"

    # Queue Operations
    QUEUE_ENQUEUED = "Enqueued '%s' at position %s in guild %s"
    QUEUE_REPLACED = "Replaced '%s' with '%s' in guild %s"
    QUEUE_EMPTY = "Queue empty in guild %s"
    QUEUE_CLEARED = "Cleared %s tracks from queue in guild %s"
    QUEUE_REQUEUE_DROPPED = "Queue full in guild %s, dropped interrupted request '%s'"

    # Playback Operations
    PLAYBACK_STARTED = "Started playing '%s' in guild %s"
    PLAYBACK_PAUSED = "Paused playback in guild %s"
    PLAYBACK_RESUMED = "Resumed playback in guild %s"
    PLAYBACK_ENDED = "Track '%s' ended in guild %s (%s)"
    PLAYBACK_FAILED = "Track '%s' failed in guild %s: %s"
    PLAYBACK_NO_TRANSPORT = "No voice transport in guild %s, leaving %s tracks queued"
    PLAYBACK_PAUSE_OVERFLOW = "Pause buffer full in guild %s, dropped %s frames"
    STREAM_UNEXPECTED_ERROR = "Unexpected error while streaming in guild %s"

    # Advance / Resolution
    ADVANCE_RESOLVE_FAILED = "Failed to resolve '%s' in guild %s: %s"
    ADVANCE_RESOURCE_RETRY = "Process limit reached in guild %s, retry %s/%s in %.2fs"
    ADVANCE_HALTED = "Giving up after %s consecutive failures in guild %s"

    # Voting
    VOTE_CAST = "%s vote by %s in guild %s: %s (%s/%s)"
    VOTE_PASSED = "%s vote passed in guild %s"

    # yt-dlp Operations
    YTDLP_RESOLVING = "Resolving '%s' via yt-dlp"
    YTDLP_RESOLVED = "Resolved '%s' as '%s'"
    YTDLP_TIMEOUT = "yt-dlp timed out after %.1fs for '%s', killing process"
    YTDLP_FAILED = "yt-dlp failed for '%s' (exit code %s)"

    # FFmpeg Operations
    FFMPEG_SPAWNED = "Spawned ffmpeg (pid %s) for %s"
    FFMPEG_EXITED = "ffmpeg (pid %s) exited with code %s"
    FFMPEG_TERMINATE_TIMEOUT = "ffmpeg (pid %s) ignored SIGTERM for %.1fs, killing"
    FFMPEG_PROCESS_CLEANUP_ERROR = "Error cleaning up process: %s"

    # Process Limiter
    PROCESS_SLOT_ACQUIRED = "Acquired process slot (%s/%s in use)"
    PROCESS_LIMIT_REACHED = "Process limit reached (%s/%s in use)"

    # Event Bus
    EVENT_HANDLER_ERROR = "Error in handler for %s"
    EVENT_DISPATCH_ERROR = "Error dispatching %s for guild %s"

    # Notifier
    NOTIFY_SEND_FAILED = "Failed to send notification to channel %s: %r"

    # Bot Lifecycle
    BOT_STARTING = "Starting guild player bot (environment: %s)"
    BOT_LIMITS = "Limits: %d audio processes, %d queued tracks per guild, vote ratio %.2f"
    SETTINGS_INVALID = "Invalid settings: %s"
    BOT_STARTING_RUN = "Starting bot..."
    BOT_STOPPED = "Bot stopped"
    BOT_KEYBOARD_INTERRUPT = "Received keyboard interrupt"
    BOT_FATAL_ERROR = "Fatal error: %s"
    BOT_SETUP = "Setting up bot..."
    BOT_SETUP_COMPLETE = "Bot setup complete"
    BOT_READY = "Logged in as %s (ID: %s)"
    BOT_SHUTDOWN = "Shutting down bot..."
    BOT_SHUTDOWN_TIMEOUT = "Graceful shutdown did not finish within %.0fs"
    BOT_SYNC_FAILED = "Failed to sync commands: %s"
    BOT_COMMANDS_SYNCED = "Synced %d commands to %s"
    COG_LOADED = "Loaded cog %s"
    COMMAND_FAILED = "Command /%s failed in guild %s"


class DiscordUIMessages:
    """User-facing Discord messages and responses.

    These strings are shown directly to users in Discord interactions.
    Keep them concise and friendly.
    """

    # Command responses
    QUEUED = "📥 Queued **{title}** (position {position})."
    QUEUED_NOT_IN_VOICE = "📥 Queued **{title}** (position {position}). Join a voice channel to listen."
    REPLACED = "🔁 Replaced **{old}** with **{new}**."
    REPLACED_NOTHING = "📥 Nothing of yours was queued, so **{new}** was queued instead."
    SKIPPED = "⏭️ Skipped **{title}**."
    PAUSED = "⏸️ Paused."
    RESUMED = "▶️ Resumed."
    STOPPED = "⏹️ Stopped playback."
    LEFT = "👋 Left the voice channel."
    QUEUE_HEADER = "**Up next** ({count}):"
    QUEUE_ITEM = "`{index}.` {title}"
    QUEUE_MORE = "...and {count} more"
    NOW_PLAYING_LINE = "**Now playing:** {title}"

    # Votes
    VOTE_NEEDS_MORE = "🗳️ Vote to {action} counted ({votes}/{required}), {remaining} more needed."
    VOTE_ALREADY_VOTED = "You already voted to {action} ({votes}/{required})."
    VOTE_NOT_IN_CHANNEL = "You need to be listening in my voice channel to vote."

    # Notifications (rendered from session events)
    NOTIFY_TRACK_STARTED = "🎶 Now playing **{title}**{duration}"
    NOTIFY_TRACK_FAILED = "⚠️ Playback of **{title}** failed, moving on."
    NOTIFY_QUEUE_EMPTIED = "✅ Queue finished."
    NOTIFY_RESOLVE_FAILED = "⚠️ Couldn't load `{query}`: {reason}"
    NOTIFY_ADVANCE_HALTED = "⚠️ Too many tracks failed in a row; {remaining} still queued. Use /resume to retry."
    NOTIFY_VOICE_LOST = "🔌 Lost the voice connection. Waiting {grace:.0f}s for it to come back."
    NOTIFY_SESSION_TERMINATED = "👋 Playback session ended ({reason})."

    # State errors
    STATE_SERVER_ONLY = "This command only works in a server."
    STATE_NEED_TO_BE_IN_VOICE = "You need to be in a voice channel."
    STATE_NOTHING_PLAYING = "Nothing is playing."
    STATE_NOT_PAUSED = "Playback is not paused and nothing is waiting to play."
    STATE_QUEUE_EMPTY = "The queue is empty."

    # Errors
    ERROR_COULD_NOT_JOIN_VOICE = "I couldn't join your voice channel."
    ERROR_GENERIC = "Something went wrong: {error}"
    ERROR_UNEXPECTED = "An unexpected error occurred."
