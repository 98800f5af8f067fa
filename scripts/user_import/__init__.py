"""PingOne bulk user import.

Reads users from a CSV file, submits them concurrently to the PingOne
users API under a global rate limit, and writes the original lines of any
rejected users to a rejects CSV that can be corrected and re-imported.
"""
