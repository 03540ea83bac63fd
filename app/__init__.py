"""Progress Tracker response ledger.

Stores student submissions in a per-student partition and a global review
collection, drives the instructor review workflow and derives per-topic
weakness analytics from accumulated answers.
"""
