"""
Ora Scan Platform
Interview layer — stateful, per-lifecycle objects behind the interview API.

Modules:
    - repository: service-backed persistence usable from timer threads
    - store:      Pain-Point Summary Store (optimistic edits, full-array saves)
    - engine:     Live Transcription Engine (recording state machine, timers)
    - viewer:     Lifecycle Viewer (score tree, tree edits, context switch)
    - panel:      Interview Panel lanes + assistant panel context tracking
"""
