"""RecruitDesk — recruitment portal support chat and notifications."""

__version__ = "0.1.0"
