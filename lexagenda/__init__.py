"""LexAgenda - scheduling engine for legal practices.

Unifies tasks, hearings and events/deadlines into one agenda, expands
recurrence rules lazily and guards reschedules against fixed deadlines.
"""

__version__ = "1.0.0"
__author__ = "LexAgenda Team"
__email__ = "dev@lexagenda.local"
__description__ = "Scheduling engine for legal practices: recurrence, deadlines and time tracking"

# Package metadata
__all__ = [
    "__author__",
    "__description__",
    "__email__",
    "__version__",
]
