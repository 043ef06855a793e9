"""
Built-in strategy records.

These are seeded into a fresh catalog (and written to the strategy file the
first time the store is created). They use the persisted record format so the
same validation path applies to them as to anything loaded from disk.
"""

import copy

DEFAULT_STRATEGY_RECORDS: list[dict] = [
    {
        "id": "curious_awaken_explore",
        "name": "Curious exploration",
        "description": "When curious and awakened, offer to look at the screen",
        "states": ["awaken"],
        "emotions": ["curious"],
        "priority": 8,
        "cooldownMs": 5000,
        "actions": [
            {
                "type": "plugin_trigger",
                "delayMs": 300,
                "pluginId": "screenshot",
                "message": "Starting to explore the screen...",
                "params": {"action": "capture"},
            },
            {
                "type": "user_prompt",
                "delayMs": 800,
                "message": "Found something interesting? I can help record or analyze it!",
            },
        ],
    },
    {
        "id": "focused_control_tools",
        "name": "Focused tool mode",
        "description": "Control state while focused opens productivity tools",
        "states": ["control"],
        "emotions": ["focused"],
        "priority": 9,
        "cooldownMs": 3000,
        "actions": [
            {"type": "control_activation", "message": "Focus mode on, ready to work!"},
            {
                "type": "plugin_trigger",
                "delayMs": 200,
                "pluginId": "productivity",
                "message": "Productivity tools are ready",
                "params": {"action": "open_tools"},
            },
        ],
    },
    {
        "id": "happy_hover_interaction",
        "name": "Happy interaction",
        "description": "Greets the user on hover when happy",
        "states": ["hover"],
        "emotions": ["happy"],
        "priority": 6,
        "cooldownMs": 2000,
        "actions": [
            {"type": "hover_feedback", "message": "Nice to see you! Anything I can help with?"},
            {
                "type": "emotional_animation",
                "delayMs": 500,
                "durationMs": 1000,
                "animation": "happy_bounce",
                "message": "Playing a cheerful animation",
            },
        ],
    },
    {
        "id": "sleepy_idle_rest",
        "name": "Auto rest",
        "description": "Rests when idle and noticeably sleepy",
        "states": ["idle"],
        "emotions": ["sleepy"],
        "priority": 3,
        "cooldownMs": 10000,
        "conditions": [{"type": "emotion_intensity", "operator": "gte", "value": 0.6}],
        "actions": [
            {
                "type": "idle_animation",
                "animation": "sleep_idle",
                "message": "Feeling a bit tired, time for a short rest...",
                "params": {"rest_mode": True},
            },
            {
                "type": "user_prompt",
                "delayMs": 5000,
                "message": "Maybe we both deserve a break?",
            },
        ],
    },
    {
        "id": "excited_awaken_highpower",
        "name": "High power mode",
        "description": "Excited awakening starts everything at once",
        "states": ["awaken"],
        "emotions": ["excited"],
        "priority": 10,
        "cooldownMs": 1000,
        "actions": [
            {"type": "awaken_response", "message": "Wow! I can feel your energy, let's go!"},
            {
                "type": "plugin_trigger",
                "delayMs": 100,
                "pluginId": "system_boost",
                "message": "All systems at full power!",
            },
            {
                "type": "user_prompt",
                "delayMs": 600,
                "message": "Ready? We can get anything done together!",
            },
        ],
    },
    {
        "id": "calm_universal_basic",
        "name": "Calm baseline",
        "description": "Low-key response in any state while calm",
        "states": ["idle", "hover", "awaken", "control"],
        "emotions": ["calm"],
        "priority": 2,
        "cooldownMs": 8000,
        "conditions": [{"type": "emotion_intensity", "operator": "lt", "value": 0.8}],
        "actions": [
            {"type": "emotional_expression", "message": "Staying calm, ready when you are"},
        ],
    },
    {
        "id": "intro_video_playback",
        "name": "Intro video",
        "description": "Plays the intro clip on a curious awakening",
        "states": ["awaken"],
        "emotions": ["curious"],
        "priority": 9,
        "cooldownMs": 30000,
        "actions": [
            {
                "type": "video_preparation",
                "message": "Preparing the intro animation...",
                "params": {"video_id": "intro001", "chunk_policy": "emotion_driven"},
            },
            {
                "type": "plugin_trigger",
                "delayMs": 500,
                "pluginId": "player",
                "message": "Starting the video player...",
                "params": {"action": "play_video", "video_id": "intro001", "emotion_sync": True},
            },
        ],
    },
    {
        "id": "focus_demo_video",
        "name": "Focus demo video",
        "description": "Shows the feature demo when strongly focused in control",
        "states": ["control"],
        "emotions": ["focused"],
        "priority": 7,
        "cooldownMs": 60000,
        "conditions": [{"type": "emotion_intensity", "operator": "gte", "value": 0.7}],
        "actions": [
            {
                "type": "demo_preparation",
                "message": "Preparing the feature demo...",
                "params": {"video_id": "focus_demo"},
            },
            {
                "type": "plugin_trigger",
                "delayMs": 300,
                "pluginId": "player",
                "message": "Starting the feature demo...",
                "params": {"action": "play_video", "video_id": "focus_demo"},
            },
        ],
    },
    {
        "id": "celebration_video",
        "name": "Celebration",
        "description": "Celebrates very high excitement",
        "states": ["awaken", "hover"],
        "emotions": ["excited"],
        "priority": 8,
        "cooldownMs": 15000,
        "conditions": [{"type": "emotion_intensity", "operator": "gt", "value": 0.8}],
        "actions": [
            {
                "type": "celebration_start",
                "message": "Awesome! Let's celebrate!",
                "params": {"celebration_type": "excited", "trigger": "high_emotion"},
            },
            {
                "type": "plugin_trigger",
                "delayMs": 200,
                "pluginId": "player",
                "message": "Playing the celebration clip!",
                "params": {"action": "play_video", "video_id": "celebration", "emotion_sync": True},
            },
        ],
    },
    {
        "id": "ambient_video_idle",
        "name": "Ambient video",
        "description": "Soothing background clip after two minutes without interaction",
        "states": ["idle"],
        "emotions": ["calm", "sleepy"],
        "priority": 3,
        "cooldownMs": 300000,
        "conditions": [{"type": "idle_time", "operator": "gt", "value": 120000}],
        "actions": [
            {"type": "ambient_setup", "message": "Playing a soothing background video..."},
            {
                "type": "plugin_trigger",
                "delayMs": 1000,
                "pluginId": "player",
                "message": "Starting the ambient video",
                "params": {"action": "play_video", "video_id": "ambient_calm", "loop": True},
            },
        ],
    },
]


def get_default_strategy_records() -> list[dict]:
    """Fresh copies, safe for callers to mutate."""
    return copy.deepcopy(DEFAULT_STRATEGY_RECORDS)
