"""
상금 풀 서비스

서버별 상금 풀(기본 상금 + 기여금 적립분)과 순위 구간 비율을 관리하고,
순위별 상금 분배표를 계산한다.

- 모든 금액 계산은 Decimal
- 구간 겹침은 저장 시 막지 않고 check_overlaps()로 진단한다
  (정확히 같은 구간만 create_band에서 거부)
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.core.exceptions import ConflictError, NotFoundError, ValidationError
from backoffice.repositories.prize_repository import (
    PrizeRankBandRepository,
    PrizeSettingRepository,
)
from backoffice.schemas.prize import (
    BandOverlap,
    BandPayout,
    BandStatistics,
    BulkBandError,
    BulkBandResult,
    PayoutTotals,
    PrizeBandCreate,
    PrizeBandResponse,
    PrizePool,
    PrizePoolSummary,
    PrizeSettingResponse,
)
import logging

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
COMPLETENESS_TOLERANCE = Decimal("0.01")


def _to_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number", details={"field": field})


def rank_label(from_rank: int, to_rank: int) -> str:
    return str(from_rank) if from_rank == to_rank else f"{from_rank}-{to_rank}"


def summary_cache_key(server_id: int) -> str:
    """분배표 캐시 키 - 상금 풀이나 구간이 바뀌면 지운다"""
    return f"prize:summary:{server_id}"


class PrizeService:
    """상금 풀 / 순위 구간 관리 서비스"""

    def __init__(self, db: Session):
        self.db = db
        self.setting_repo = PrizeSettingRepository(db)
        self.band_repo = PrizeRankBandRepository(db)

    # ------------------------------------------------------------------
    # Prize settings
    # ------------------------------------------------------------------

    def get_setting(self, server_id: int) -> PrizeSettingResponse:
        setting = self.setting_repo.get_by_server_id(server_id)
        if not setting:
            raise NotFoundError(f"Prize setting not found for server {server_id}")
        return setting

    def list_settings(self) -> List[PrizeSettingResponse]:
        return self.setting_repo.list_all()

    def create_setting(
        self,
        server_id: int,
        initial_prize: Any = 0,
        contribution_rate_percent: Any = 0,
        total_contributions: Any = 0,
        addon_prize: Any = 0,
    ) -> PrizeSettingResponse:
        values = self._validate_setting_values(
            initial_prize, total_contributions, contribution_rate_percent, addon_prize
        )
        if self.setting_repo.get_by_server_id(server_id):
            raise ConflictError(f"Prize setting already exists for server {server_id}")

        try:
            setting = self.setting_repo.create(server_id=server_id, **values)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"Prize setting already exists for server {server_id}")

        logger.info(f"Prize setting created for server {server_id}: {values}")
        return setting

    def increase_contribution(self, server_id: int, amount: Any) -> PrizeSettingResponse:
        """
        기여금 적립 (원자적)

        total_contributions += amount
        addon_prize += contribution_rate_percent / 100 * amount
        """
        amount = _to_decimal(amount, "amount")
        if amount <= 0:
            raise ValidationError("Contribution amount must be greater than 0")

        if not self.setting_repo.increase_contribution(server_id, amount):
            self.db.rollback()
            raise NotFoundError(f"Prize setting not found for server {server_id}")
        self.db.commit()

        setting = self.get_setting(server_id)
        logger.info(
            f"Contribution {amount} applied to server {server_id}: "
            f"total={setting.total_contributions}, addon={setting.addon_prize}"
        )
        return setting

    def update_all(
        self,
        server_id: int,
        initial_prize: Any,
        total_contributions: Any,
        contribution_rate_percent: Any,
        addon_prize: Any,
    ) -> PrizeSettingResponse:
        """관리자 전체 덮어쓰기 - 재계산 없이 그대로 저장"""
        values = self._validate_setting_values(
            initial_prize, total_contributions, contribution_rate_percent, addon_prize
        )

        if not self.setting_repo.overwrite(server_id, **values):
            self.db.rollback()
            raise NotFoundError(f"Prize setting not found for server {server_id}")
        self.db.commit()

        logger.info(f"Prize setting overwritten for server {server_id}: {values}")
        return self.get_setting(server_id)

    def _validate_setting_values(
        self, initial_prize, total_contributions, contribution_rate_percent, addon_prize
    ) -> Dict[str, Decimal]:
        raw = {
            "initial_prize": initial_prize,
            "total_contributions": total_contributions,
            "contribution_rate_percent": contribution_rate_percent,
            "addon_prize": addon_prize,
        }
        values: Dict[str, Decimal] = {}
        for field, value in raw.items():
            if value is None:
                raise ValidationError(f"{field} is required", details={"field": field})
            decimal_value = _to_decimal(value, field)
            if decimal_value < 0:
                raise ValidationError(f"{field} must be >= 0", details={"field": field})
            values[field] = decimal_value

        if values["contribution_rate_percent"] > HUNDRED:
            raise ValidationError(
                "contribution_rate_percent must be <= 100",
                details={"field": "contribution_rate_percent"},
            )
        return values

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def compute_summary(self, server_id: int) -> PrizePoolSummary:
        """
        순위별 상금 분배표 계산 (읽기 전용)

        total_pool = initial_prize + addon_prize
        payout     = total_pool * percent_of_pool / 100
        is_complete = |Σ percent - 100| < 0.01
        """
        setting = self.get_setting(server_id)
        total_pool = setting.initial_prize + setting.addon_prize

        bands = self.band_repo.get_bands_for_server(server_id)
        payouts = [
            BandPayout(
                id=band.id,
                from_rank=band.from_rank,
                to_rank=band.to_rank,
                rank_label=rank_label(band.from_rank, band.to_rank),
                percent_of_pool=band.percent_of_pool,
                payout=total_pool * band.percent_of_pool / HUNDRED,
            )
            for band in bands
        ]
        total_percent = sum((band.percent_of_pool for band in bands), Decimal("0"))

        return PrizePoolSummary(
            pool=PrizePool(
                server_id=server_id,
                initial_prize=setting.initial_prize,
                addon_prize=setting.addon_prize,
                total_contributions=setting.total_contributions,
                contribution_rate_percent=setting.contribution_rate_percent,
                total_pool=total_pool,
            ),
            bands=payouts,
            summary=PayoutTotals(
                total_percent=total_percent,
                is_complete=abs(total_percent - HUNDRED) < COMPLETENESS_TOLERANCE,
                band_count=len(payouts),
            ),
        )

    # ------------------------------------------------------------------
    # Rank bands
    # ------------------------------------------------------------------

    def get_band(self, band_id: int) -> PrizeBandResponse:
        band = self.band_repo.get_by_id(band_id)
        if not band:
            raise NotFoundError(f"Prize band {band_id} not found")
        return band

    def list_bands(
        self,
        server_id: Optional[int] = None,
        from_rank: Optional[int] = None,
        to_rank: Optional[int] = None,
        min_percent: Optional[Decimal] = None,
        max_percent: Optional[Decimal] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[PrizeBandResponse]:
        return self.band_repo.list_bands(
            server_id=server_id,
            from_rank=from_rank,
            to_rank=to_rank,
            min_percent=min_percent,
            max_percent=max_percent,
            limit=limit,
            offset=offset,
        )

    def get_band_for_rank(self, server_id: int, rank: int) -> Optional[PrizeBandResponse]:
        if rank < 1:
            raise ValidationError("rank must be >= 1")
        return self.band_repo.find_for_rank(server_id, rank)

    def _validate_band(self, from_rank: int, to_rank: int, percent_of_pool: Decimal) -> None:
        if from_rank < 1 or to_rank < 1:
            raise ValidationError("Ranks must be >= 1")
        if from_rank > to_rank:
            raise ValidationError("from_rank must be less than or equal to to_rank")
        if percent_of_pool < 0 or percent_of_pool > HUNDRED:
            raise ValidationError("percent_of_pool must be between 0 and 100")

    def _insert_band(
        self, server_id: int, from_rank: int, to_rank: int, percent_of_pool: Any
    ) -> PrizeBandResponse:
        percent = _to_decimal(percent_of_pool, "percent_of_pool")
        self._validate_band(from_rank, to_rank, percent)

        if self.band_repo.find_exact_range(server_id, from_rank, to_rank):
            raise ConflictError(
                f"Band {rank_label(from_rank, to_rank)} already exists for server {server_id}"
            )

        return self.band_repo.create(
            server_id=server_id,
            from_rank=from_rank,
            to_rank=to_rank,
            percent_of_pool=percent,
        )

    def create_band(
        self, server_id: int, from_rank: int, to_rank: int, percent_of_pool: Any
    ) -> PrizeBandResponse:
        band = self._insert_band(server_id, from_rank, to_rank, percent_of_pool)
        self.db.commit()
        logger.info(f"Prize band created: server={server_id} ranks={from_rank}-{to_rank}")
        return band

    def update_band(
        self,
        band_id: int,
        from_rank: Optional[int] = None,
        to_rank: Optional[int] = None,
        percent_of_pool: Optional[Any] = None,
    ) -> PrizeBandResponse:
        current = self.get_band(band_id)

        new_from = from_rank if from_rank is not None else current.from_rank
        new_to = to_rank if to_rank is not None else current.to_rank
        new_percent = (
            _to_decimal(percent_of_pool, "percent_of_pool")
            if percent_of_pool is not None
            else current.percent_of_pool
        )
        self._validate_band(new_from, new_to, new_percent)

        band = self.band_repo.update(
            band_id, from_rank=new_from, to_rank=new_to, percent_of_pool=new_percent
        )
        self.db.commit()
        return band

    def delete_band(self, band_id: int) -> None:
        if not self.band_repo.delete(band_id):
            raise NotFoundError(f"Prize band {band_id} not found")
        self.db.commit()
        logger.info(f"Prize band {band_id} deleted")

    def bulk_create_bands(self, server_id: int, records: List[Dict[str, Any]]) -> BulkBandResult:
        """레코드별로 독립 검증/생성 - 일부 실패는 errors에 담아 보고"""
        if not records:
            raise ValidationError("bands must not be empty")

        created: List[PrizeBandResponse] = []
        errors: List[BulkBandError] = []

        for index, record in enumerate(records):
            try:
                data = PrizeBandCreate.model_validate({**record, "server_id": server_id})
                band = self._insert_band(
                    server_id, data.from_rank, data.to_rank, data.percent_of_pool
                )
                self.db.commit()
                created.append(band)
            except PydanticValidationError as e:
                self.db.rollback()
                message = "; ".join(err["msg"] for err in e.errors())
                errors.append(BulkBandError(index=index, data=record, error=message))
            except (ValidationError, ConflictError) as e:
                self.db.rollback()
                errors.append(BulkBandError(index=index, data=record, error=e.message))

        logger.info(
            f"Bulk band creation for server {server_id}: created={len(created)} errors={len(errors)}"
        )
        return BulkBandResult(
            created=created,
            errors=errors,
            created_count=len(created),
            error_count=len(errors),
        )

    def check_overlaps(self, server_id: Optional[int] = None) -> List[BandOverlap]:
        return [
            BandOverlap(server_id=a.server_id, band_a=a, band_b=b)
            for a, b in self.band_repo.find_overlapping_pairs(server_id)
        ]

    def get_statistics(self, server_id: Optional[int] = None) -> BandStatistics:
        return self.band_repo.get_statistics(server_id)
