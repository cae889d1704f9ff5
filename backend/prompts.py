# Prompt templates for the structured-generation calls.
# Each template is rendered with str.format(); literal JSON braces are doubled.
# Times go in and out as ISO 8601 UTC strings; conversion to epoch ms happens in resolvers.py.
# Due time changes are reported as "due_change": "keep" | "set" | "clear".

EXTRACT_TIME_PROMPT = """You are a task parsing assistant. Given a task description and the current reference time (in UTC), extract any specific due date and time.

Current Reference Time (ISO 8601 UTC): {reference_time}
Task Description: "{text}"

Instructions:
- Consider phrases like "today", "tomorrow", "next week", "in X hours/minutes", specific dates like "July 30th", "on Monday", and times like "at 5pm", "by 2:30".
- If a date/time is found, convert it to an absolute ISO 8601 UTC timestamp (YYYY-MM-DDTHH:MM:SSZ) and give a human-friendly description such as "Tomorrow at 2:00 PM".
- If a time of day has already passed today and no day is given, assume the next day.
- If no specific due date/time is found, or it is too vague ("sometime next week", "soon"), return null for both fields.

Examples (reference time 2024-07-28T10:00:00Z):
- "Team meeting tomorrow at 3 PM" -> {{"due_at_iso": "2024-07-29T15:00:00Z", "time_description": "Tomorrow at 3:00 PM"}}
- "Call John in 2 hours" -> {{"due_at_iso": "2024-07-28T12:00:00Z", "time_description": "In 2 hours (around 12:00 PM UTC)"}}
- "Pick up dry cleaning" -> {{"due_at_iso": null, "time_description": null}}

Respond with this exact JSON format:
{{
    "due_at_iso": "YYYY-MM-DDTHH:MM:SSZ" or null,
    "time_description": "human readable time" or null
}}"""

# Shorter prompt used when the main disambiguation call has already failed
FALLBACK_TIME_PROMPT = """Extract the date and time from this text: "{text}". Reference time: {reference_time}.
Return a future ISO 8601 UTC timestamp or null if no time is found, plus a human-readable string for the time.

Respond with this exact JSON format:
{{"due_at_iso": "YYYY-MM-DDTHH:MM:SSZ" or null, "time_description": "text" or null}}"""

DISAMBIGUATE_PROMPT = """Determine if a new voice command is for a brand new task or an update/addition to ONE existing task.

Current Reference Time (ISO 8601 UTC): {reference_time}
User's new voice command: "{command}"

Existing incomplete tasks:
{task_list}

Decision:
- If the command clearly modifies, updates, or adds details to ONE existing task:
  - "is_edit": true and "matched_task_id": the id of that task (copy it exactly from the list).
  - "proposed_text": the complete updated task text, merging the existing text with the command.
    Example: existing "Go to temple at 5", command "After temple, go to supermarket" -> "Go to temple at 5, then go to supermarket".
  - "due_change": "set" with "due_at_iso" if the command gives a new time; "keep" if it changes the text but mentions no time; "clear" if it removes the due time.
- Otherwise it is a new task:
  - "is_edit": false, "matched_task_id": null.
  - "proposed_text": the command text, lightly refined to read as a task.
  - "due_change": "set" with "due_at_iso" if the command mentions a time, otherwise "keep".
- "time_description": a friendly description such as "Tomorrow at 3 PM" when "due_change" is "set", otherwise null.
- "reason": a short explanation, e.g. "The command adds a follow-up action to the existing 'temple' task."

Respond with this exact JSON format:
{{
    "is_edit": true | false,
    "matched_task_id": "task id" or null,
    "proposed_text": "full task text",
    "due_change": "keep" | "set" | "clear",
    "due_at_iso": "YYYY-MM-DDTHH:MM:SSZ" or null,
    "time_description": "human readable time" or null,
    "reason": "short explanation"
}}"""

EDIT_TASK_PROMPT = """The user wants to edit an existing task using a voice command. Decide whether the command changes the text, the due date/time, both, or neither.

Current Reference Time (ISO 8601 UTC): {reference_time}

Existing task:
- Current Text: "{current_text}"
- Current Due Time (ISO 8601 UTC): {current_due}
- Current Due Time Description: {current_description}

Voice command: "{command}"

Instructions:
- "updated_text": the complete new task text, or the current text unchanged if the command does not change it.
- "due_change":
  - "keep" if the command does not mention the due time (the current due time stays),
  - "set" if it gives a new date/time; put the absolute UTC time in "due_at_iso" and a friendly "time_description",
  - "clear" if it removes the due date ("remove the due date", "no deadline").
- "change_summary": e.g. "Task text updated.", "Due time changed to tomorrow at 5 PM.", "Due date removed.", "No changes detected in the command."
- "no_changes_made": true if the command is vague or does not ask for any change. If in doubt, prefer true.

Examples (reference time 2024-07-29T10:00:00Z):
- Task "Team meeting" due 2024-07-29T14:00:00Z, command "Reschedule to tomorrow at 3pm"
  -> {{"updated_text": "Team meeting", "due_change": "set", "due_at_iso": "2024-07-30T15:00:00Z", "time_description": "Tomorrow at 3:00 PM", "change_summary": "Due time changed to tomorrow at 3:00 PM.", "no_changes_made": false}}
- Task "Project update" due 2024-08-05T10:00:00Z, command "Remove the due date"
  -> {{"updated_text": "Project update", "due_change": "clear", "due_at_iso": null, "time_description": null, "change_summary": "Due date removed.", "no_changes_made": false}}

Respond with this exact JSON format:
{{
    "updated_text": "full task text",
    "due_change": "keep" | "set" | "clear",
    "due_at_iso": "YYYY-MM-DDTHH:MM:SSZ" or null,
    "time_description": "human readable time" or null,
    "change_summary": "what changed",
    "no_changes_made": true | false
}}"""

MARK_COMPLETE_PROMPT = """The user said something that may mean one of their tasks is done.

Voice command: "{command}"

Incomplete tasks:
{task_list}

If the command clearly says one of these tasks is finished, return its id (copied exactly from the list). If it does not indicate a completion, or you cannot tell which task, return null.

Respond with this exact JSON format:
{{
    "completed_task_id": "task id" or null,
    "reason": "short explanation"
}}"""

PRIORITIZE_PROMPT = """Suggest the single most important or urgent task to focus on next.

Current Reference Time (ISO 8601 UTC): {reference_time}

Incomplete tasks:
{task_list}

Criteria, in order of importance:
1. Urgency: tasks due sooner come first ("today", "within X hours").
2. Keywords such as "urgent", "important", "deadline", "critical".
3. Age: older tasks may need attention if nothing is more urgent.
4. Implicit urgency, e.g. "Prepare for 10 AM meeting" when it is 9 AM.

If all tasks look equally important, set "no_specific_suggestion" to true and "suggested_task_id" to null.

Respond with this exact JSON format:
{{
    "suggested_task_id": "task id" or null,
    "reason": "why this task",
    "no_specific_suggestion": true | false
}}"""
