"""
Entry point scripts for processes started by ecolaunch itself.

The supervisor entry is kept minimal so the detached supervisor process has a
simple, dedicated startup routine.
"""
