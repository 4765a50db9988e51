class AppError:
    """Represents different categories of application errors."""

    def __init__(self, category: str, message: str) -> None:
        self.category = category  # 'validation', 'conflict', 'not_found', 'infrastructure'
        self.message = message

    def __str__(self) -> str:
        return self.message
