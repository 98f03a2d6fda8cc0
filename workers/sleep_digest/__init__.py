"""Sleep digest worker package.

Runs the scheduled sweep that emails every linked user last night's sleep.
"""
