"""
Exam XML Converter
==================
Converts structured exam content into canonical exam XML for the mastering
engine and re-attaches answer identifiers to the mastered output.

Architecture:
    - Sanitizer: Turns inline HTML into well-formed exam markup fragments
    - Builder: Emits the canonical exam document per question type
    - Attachments: External material block and cross-reference hashes
    - Allocator: Stamps question/option ids onto mastered XML by position
    - Engine: Drives build → mastering → allocation with logging and errors

Version: 1.0.0
"""

__version__ = "1.0.0"
