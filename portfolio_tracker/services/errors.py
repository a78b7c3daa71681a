class PortfolioNotFoundError(LookupError):
    def __init__(self, portfolio_id: str):
        super().__init__(f"Portfolio not found: {portfolio_id}")
        self.portfolio_id = portfolio_id
