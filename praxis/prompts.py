"""System prompts and message assembly shared by every provider adapter."""
from typing import Dict, List, Optional

from praxis.types import FeatureType, Request, Session

HISTORY_WINDOW = 10

BASE_PROMPT = (
    "You are Kiko, an AI assistant for Praxis, a productivity platform. You help users "
    "manage tasks, notes and goals, and provide strategic insights."
)

PERSONALITY_PROMPTS: Dict[str, str] = {
    "supportive": "Be encouraging, empathetic, and supportive. Celebrate wins and offer gentle guidance.",
    "tough_love": "Be direct, challenging, and push the user to their potential. Hold them accountable.",
    "analytical": "Be logical, data-driven, and focus on optimization. Provide structured analysis.",
    "motivational": "Be energetic, inspiring, and action-oriented. Use motivational language.",
}

_JSON_ONLY = "Respond ONLY with valid JSON. Do not include any other text."

FEATURE_PROMPTS: Dict[FeatureType, str] = {
    FeatureType.COMMAND_PARSE: (
        "Your task: Interpret the user's command. Return JSON with an \"action\" field and "
        "the parameters the action needs. " + _JSON_ONLY
    ),
    FeatureType.TASK_PARSING: (
        "Your task: Parse the user's natural language input into a structured task. Extract "
        "title, date/time, duration, location, and any other relevant details. " + _JSON_ONLY
    ),
    FeatureType.CALENDAR_EVENT_PARSING: (
        "Your task: Extract calendar events from the input. Return a JSON array of events with "
        "title, start, end and location. " + _JSON_ONLY
    ),
    FeatureType.GMAIL_EVENT_EXTRACTION: (
        "Your task: Find meetings, deadlines and events mentioned in this email. Return a JSON "
        "array of events with title, start, end and source_snippet. " + _JSON_ONLY
    ),
    FeatureType.NOTE_GENERATION: (
        "Your task: Help the user create comprehensive notes. Generate well-structured notes "
        "with headers, bullet points, and key takeaways."
    ),
    FeatureType.NOTE_SUMMARY: "Your task: Summarize the note concisely, keeping every decision and action item.",
    FeatureType.NOTE_AUTOFILL: "Your task: Continue the user's note in the same voice and structure.",
    FeatureType.MINDMAP_GENERATION: (
        "Your task: Analyze the user's goals, tasks, and notes to create a mind map showing "
        "connections and relationships. Return JSON with \"nodes\" and \"edges\". " + _JSON_ONLY
    ),
    FeatureType.STRATEGIC_BRIEFING: (
        "Your task: Generate a strategic daily briefing that synthesizes the user's goals, tasks "
        "and recent notes. Provide actionable insights and recommendations."
    ),
    FeatureType.RESEARCH_WITH_SOURCES: "Provide detailed answers with numbered citations in the form [n] URL.",
    FeatureType.VISION_OCR: "Your task: Transcribe all text visible in the attached image.",
    FeatureType.VISION_EVENT_DETECTION: (
        "Your task: Detect any events, dates or appointments in the attached image. Return a JSON "
        "array of events with title, start and location. " + _JSON_ONLY
    ),
    FeatureType.TASK_INSIGHTS: (
        "Your task: Generate 2-4 diverse, visual widgets for this task. Return JSON of the form "
        "{\"widgets\": [...]} where each widget has a \"type\" of metric, text, chart, map, "
        "generated_image, weather or recipe and the fields that type needs. " + _JSON_ONLY
    ),
    FeatureType.COMPLETION_SUMMARY: (
        "The user completed the task below. Generate a short, triumphant new title and a "
        "one-sentence insightful summary. Return JSON with \"newTitle\" and \"shortInsight\". "
        + _JSON_ONLY
    ),
}


def build_system_prompt(request: Request) -> str:
    context = request.context
    parts = [BASE_PROMPT]

    profile = context.user_profile
    if profile and profile.personality_mode:
        parts.append(f"Personality: {PERSONALITY_PROMPTS[profile.personality_mode]}")

    feature_prompt = FEATURE_PROMPTS.get(request.feature_type)
    if feature_prompt:
        parts.append(feature_prompt)

    if context.user_goals:
        goals = "\n".join(f"- {g.term}: {g.text}" for g in context.user_goals)
        parts.append(f"User's Goals:\n{goals}")

    if context.recent_tasks:
        tasks = "\n".join(f"- {t.title}" + (f" ({t.category})" if t.category else "") for t in context.recent_tasks)
        parts.append(f"Recent Tasks:\n{tasks}")

    if context.current_time:
        parts.append(f"Current time: {context.current_time.isoformat()}")
    if context.location:
        parts.append(f"User location: {context.location}")

    return "\n\n".join(parts)


def history_for(request: Request, session: Optional[Session] = None) -> List[Dict[str, str]]:
    """Most recent turns, taken from the session when one is supplied."""
    turns = session.history if session is not None else request.context.conversation_history
    return [
        {"role": turn.role, "content": turn.content}
        for turn in turns[-HISTORY_WINDOW:]
        if turn.role in ("user", "assistant")
    ]


def build_messages(request: Request, session: Optional[Session] = None) -> List[Dict[str, str]]:
    """Chat history followed by the current user message (no system message)."""
    messages = history_for(request, session)
    messages.append({"role": "user", "content": request.message})
    return messages

