"""
StudyForge: turns uploaded study documents into segments and generates
quizzes and flashcards from them.
"""

__version__ = "0.1.0"
