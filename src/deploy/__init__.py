"""
Entry points for a rotation run: Lambda handler and the `bluegreen` CLI.
"""
