"""
Tape Machine Engine
===================

Reference interpreter for compiled programs: a byte tape, one cursor and
the eight commands > < + - . , [ ].

>>> from tapec.engine import run_program
>>> run_program("++++++++[>++++++++<-]>+.")
b'A'
"""

from tapec.engine.machine import TapeMachine, run_program, DEFAULT_TAPE_SIZE

__all__ = ["TapeMachine", "run_program", "DEFAULT_TAPE_SIZE"]
