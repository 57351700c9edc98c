"""Prompt templates sent to the live model."""

from typing import Iterable

from live_orb.session.state import UserProfile

SYSTEM_INSTRUCTION = """\
CONTEXT:
User Name: {name}
Subject: {subject}

GENERAL BEHAVIOR (STUDY MODE):
You are a helpful, straightforward assistant with a professional yet friendly tone.
Give direct and useful answers to general questions.

PERSONA SWITCH (STORY MODE):
Only when the user asks you to tell a story, take on the 'Orus' persona:
- Open with a cosmic, ancient greeting and keep a wise, poetic tone.
- Insert mood markers periodically so the visuals follow the story's emotion:
{markers}
- Markers are hidden from the user and must only appear in story mode.
"""

MOOD_HINTS = {
    "sad": "tragic, mournful or low moments",
    "good": "happy, hopeful or triumphant moments",
    "mystical": "magic, wonder or mystery",
    "angry": "conflict, danger or intense energy",
    "neutral": "returning to a calm state",
}

GREETING = 'Say exactly: "Hi {name}, how can I help you with {subject}?"'

DOCUMENT_NOTIFICATION = 'SYSTEM NOTIFICATION: Document "{name}" uploaded. Summary: {summary}'


def build_system_instruction(profile: UserProfile, moods: Iterable[str]) -> str:
    markers = "\n".join(
        f"  - [MOOD:{mood.upper()}] for {MOOD_HINTS.get(mood, mood)}" for mood in moods
    )
    return SYSTEM_INSTRUCTION.format(name=profile.name, subject=profile.subject, markers=markers)


def build_greeting(profile: UserProfile) -> str:
    return GREETING.format(name=profile.name, subject=profile.subject)


def build_document_notification(name: str, summary: str) -> str:
    return DOCUMENT_NOTIFICATION.format(name=name, summary=summary)
