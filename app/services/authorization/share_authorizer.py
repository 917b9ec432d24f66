from app.services.integrations.chains.models import ShareBalance


class ShareAuthorizer:
    """Threshold policy: a member may post while holding at least `threshold` shares."""

    def __init__(self, threshold: int = 1):
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        self.threshold = threshold

    def decide(self, balance: ShareBalance) -> bool:
        return balance.shares_amount >= self.threshold
