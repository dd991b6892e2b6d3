from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.core.errors import NotFound
from slotwise.models.business import Business
from slotwise.models.service import Service
from slotwise.models.staff import StaffMember, StaffServiceLink


@dataclass(frozen=True)
class BookingTarget:
    business: Business
    service: Service
    staff: StaffMember


async def get_business_by_slug(session: AsyncSession, slug: str) -> Business | None:
    result = await session.execute(select(Business).where(Business.slug == slug))
    return result.scalar_one_or_none()


async def is_staff_assigned(session: AsyncSession, staff_id: int, service_id: int) -> bool:
    result = await session.execute(
        select(StaffServiceLink).where(
            StaffServiceLink.staff_id == staff_id,
            StaffServiceLink.service_id == service_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def resolve_booking_target(
    session: AsyncSession, business_slug: str, service_id: int, staff_id: int
) -> BookingTarget:
    """Load business, service and staff; NotFound unless all belong together."""
    business = await get_business_by_slug(session, business_slug)
    if not business:
        raise NotFound("Business not found")
    service = await session.get(Service, service_id)
    if not service or service.business_id != business.id:
        raise NotFound("Service not found")
    staff = await session.get(StaffMember, staff_id)
    if not staff or staff.business_id != business.id:
        raise NotFound("Staff not found")
    if not await is_staff_assigned(session, staff.id, service.id):
        raise NotFound("Staff member does not offer this service")
    return BookingTarget(business=business, service=service, staff=staff)
