"""
State Machine Module for Conversation Flows
"""
from app.state_machine.states import SessionKind, OnboardingStep
from app.state_machine.manager import SessionStore

__all__ = ["SessionKind", "OnboardingStep", "SessionStore"]
