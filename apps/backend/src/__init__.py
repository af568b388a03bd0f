"""Package marker for the DocQuiz backend sources.

Lets `src` be imported as a package when the parent directory is on sys.path
(for example when running the API or scripts from ``apps/backend``).
"""
