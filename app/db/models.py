from sqlalchemy import BigInteger, Column, Integer, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from app.db.types import NaNFloat, UTCDateTime

Base = declarative_base()


class IntervalMixin:
    id = Column(Integer, primary_key=True, autoincrement=True)
    start_time = Column(UTCDateTime, nullable=False, index=True)
    end_time = Column(UTCDateTime, nullable=False)


class DepthInterval(IntervalMixin, Base):
    __tablename__ = "depth_intervals"

    asset_depth = Column(BigInteger, nullable=False)
    asset_price = Column(NaNFloat)
    asset_price_usd = Column(NaNFloat)
    liquidity_units = Column(BigInteger, nullable=False)
    luvi = Column(NaNFloat)
    members_count = Column(Integer, nullable=False)
    rune_depth = Column(BigInteger, nullable=False)
    synth_supply = Column(BigInteger, nullable=False)
    synth_units = Column(BigInteger, nullable=False)
    units = Column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("start_time", "end_time", name="uix_depth_window"),
    )


class SwapInterval(IntervalMixin, Base):
    __tablename__ = "swap_intervals"

    average_slip = Column(NaNFloat)
    rune_price_usd = Column(NaNFloat)

    from_trade_average_slip = Column(NaNFloat)
    from_trade_count = Column(BigInteger, nullable=False)
    from_trade_fees = Column(BigInteger, nullable=False)
    from_trade_volume = Column(BigInteger, nullable=False)
    from_trade_volume_usd = Column(BigInteger, nullable=False)

    synth_mint_average_slip = Column(NaNFloat)
    synth_mint_count = Column(BigInteger, nullable=False)
    synth_mint_fees = Column(BigInteger, nullable=False)
    synth_mint_volume = Column(BigInteger, nullable=False)
    synth_mint_volume_usd = Column(BigInteger, nullable=False)

    synth_redeem_average_slip = Column(NaNFloat)
    synth_redeem_count = Column(BigInteger, nullable=False)
    synth_redeem_fees = Column(BigInteger, nullable=False)
    synth_redeem_volume = Column(BigInteger, nullable=False)
    synth_redeem_volume_usd = Column(BigInteger, nullable=False)

    to_asset_average_slip = Column(NaNFloat)
    to_asset_count = Column(BigInteger, nullable=False)
    to_asset_fees = Column(BigInteger, nullable=False)
    to_asset_volume = Column(BigInteger, nullable=False)
    to_asset_volume_usd = Column(BigInteger, nullable=False)

    to_rune_average_slip = Column(NaNFloat)
    to_rune_count = Column(BigInteger, nullable=False)
    to_rune_fees = Column(BigInteger, nullable=False)
    to_rune_volume = Column(BigInteger, nullable=False)
    to_rune_volume_usd = Column(BigInteger, nullable=False)

    to_trade_average_slip = Column(NaNFloat)
    to_trade_count = Column(BigInteger, nullable=False)
    to_trade_fees = Column(BigInteger, nullable=False)
    to_trade_volume = Column(BigInteger, nullable=False)
    to_trade_volume_usd = Column(BigInteger, nullable=False)

    total_count = Column(BigInteger, nullable=False)
    total_fees = Column(BigInteger, nullable=False)
    total_volume = Column(BigInteger, nullable=False)
    total_volume_usd = Column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("start_time", "end_time", name="uix_swap_window"),
    )


class EarningsInterval(IntervalMixin, Base):
    __tablename__ = "earning_intervals"

    avg_node_count = Column(NaNFloat)
    block_rewards = Column(BigInteger, nullable=False)
    bonding_earnings = Column(BigInteger, nullable=False)
    earnings = Column(BigInteger, nullable=False)
    liquidity_earnings = Column(BigInteger, nullable=False)
    liquidity_fees = Column(BigInteger, nullable=False)
    rune_price_usd = Column(NaNFloat)
    # Per-pool breakdown, a JSON array of objects keyed by "pool"
    pools = Column(JSON, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("start_time", "end_time", name="uix_earnings_window"),
    )


class RunepoolUnitsInterval(IntervalMixin, Base):
    __tablename__ = "runepool_unit_intervals"

    count = Column(BigInteger, nullable=False)
    units = Column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("start_time", "end_time", name="uix_runepool_window"),
    )


class SyncCheckpoint(Base):
    __tablename__ = "sync_checkpoints"

    id = Column(Integer, primary_key=True, index=True)
    series = Column(String, unique=True, index=True, nullable=False)
    watermark = Column(UTCDateTime, nullable=True)
    last_status = Column(String, nullable=False)  # success, failure
    records_processed = Column(Integer, default=0)
    run_duration_ms = Column(Integer, default=0)
    error_log = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
