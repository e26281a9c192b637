"""Starting quotes and per-symbol parameters for the simulated upstream."""

# symbol: (starting mid price, annualized volatility)
SYMBOL_PARAMS: dict[str, tuple[float, float]] = {
    "AAPL": (191.00, 0.22),
    "MSFT": (415.00, 0.20),
    "GOOGL": (172.00, 0.25),
    "AMZN": (182.00, 0.28),
    "META": (495.00, 0.30),
    "NVDA": (880.00, 0.40),
    "TSLA": (245.00, 0.50),
    "NFLX": (610.00, 0.35),
    "JPM": (198.00, 0.18),
    "V": (276.00, 0.17),
    "SPY": (520.00, 0.12),
    "QQQ": (440.00, 0.16),
}

# Unknown symbols start somewhere in this range with this volatility
DEFAULT_PRICE_RANGE: tuple[float, float] = (20.0, 400.0)
DEFAULT_SIGMA = 0.25
DRIFT = 0.05

# Half-spread around the mid, in basis points
HALF_SPREAD_BPS = 1.5

# Quote sizes are round lots of 100 shares
MAX_LOTS = 20
