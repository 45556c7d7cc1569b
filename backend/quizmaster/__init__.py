"""QuizMaster: author, share, take and auto-grade quizzes over a JSON API."""
