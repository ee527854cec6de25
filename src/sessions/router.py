from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import Any, Dict, List

from src.bookings.schemas import BookingResult, FlowSnapshot, TripSummary
from src.exceptions import BookingError, SessionNotFound, BookingValidationError, PaymentShortfall
from src.notifications import Notification
from src.realtime.schemas import ConnectionStatus
from src.sessions.schemas import (
    SessionCreated, OutletSelection, StopSelection, PassengerUpdate, PaymentUpdate,
    SeatToggleResult, SeatsResponse, HoldsResponse, ResetResult
)
from src.sessions.session import AgentSession, session_manager

router = APIRouter()

def get_session(session_id: str) -> AgentSession:
    try:
        return session_manager.get(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

def to_http_exception(error: BookingError) -> HTTPException:
    """Translate a service error into the HTTP response the counter UI shows"""
    detail: Dict[str, Any] = {"message": error.message, "error": type(error).__name__}
    if isinstance(error, BookingValidationError):
        detail["issues"] = [issue.model_dump() for issue in error.issues]
    elif isinstance(error, PaymentShortfall):
        detail["total"] = str(error.total)
        detail["amount"] = str(error.amount)
    return HTTPException(status_code=error.status_code, detail=detail)

# Session lifecycle
@router.post("", response_model=SessionCreated, status_code=status.HTTP_201_CREATED)
async def create_session():
    """Open a new agent session"""
    session = await session_manager.create()
    return SessionCreated(session_id=session.session_id, created_at=session.created_at)

@router.get("/{session_id}", response_model=FlowSnapshot)
async def get_flow(session: AgentSession = Depends(get_session)):
    """Current flow state, step statuses and fare total"""
    return session.flow.snapshot()

@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(session_id: str):
    """Close the session and release its holds"""
    try:
        await session_manager.close(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

# Step commits
@router.post("/{session_id}/outlet", response_model=FlowSnapshot)
async def select_outlet(selection: OutletSelection, session: AgentSession = Depends(get_session)):
    try:
        await session.select_outlet(selection.outlet, selection.service_date)
    except BookingError as e:
        raise to_http_exception(e)
    return session.flow.snapshot()

@router.post("/{session_id}/trip", response_model=FlowSnapshot)
async def select_trip(trip: TripSummary, session: AgentSession = Depends(get_session)):
    try:
        await session.select_trip(trip)
    except BookingError as e:
        raise to_http_exception(e)
    return session.flow.snapshot()

@router.post("/{session_id}/origin", response_model=FlowSnapshot)
async def select_origin(selection: StopSelection, session: AgentSession = Depends(get_session)):
    try:
        session.flow.select_origin(selection.stop, selection.sequence)
    except BookingError as e:
        raise to_http_exception(e)
    return session.flow.snapshot()

@router.post("/{session_id}/destination", response_model=FlowSnapshot)
async def select_destination(selection: StopSelection, session: AgentSession = Depends(get_session)):
    try:
        session.flow.select_destination(selection.stop, selection.sequence)
    except BookingError as e:
        raise to_http_exception(e)
    return session.flow.snapshot()

@router.post("/{session_id}/passengers", response_model=FlowSnapshot)
async def update_passengers(update: PassengerUpdate, session: AgentSession = Depends(get_session)):
    try:
        session.flow.update_passengers(update.passengers)
    except BookingError as e:
        raise to_http_exception(e)
    return session.flow.snapshot()

@router.post("/{session_id}/payment", response_model=FlowSnapshot)
async def set_payment(update: PaymentUpdate, session: AgentSession = Depends(get_session)):
    try:
        session.flow.set_payment(update.method, update.amount)
    except BookingError as e:
        raise to_http_exception(e)
    return session.flow.snapshot()

# Navigation
@router.post("/{session_id}/steps/next", response_model=FlowSnapshot)
async def next_step(session: AgentSession = Depends(get_session)):
    try:
        session.flow.next_step()
    except BookingError as e:
        raise to_http_exception(e)
    return session.flow.snapshot()

@router.post("/{session_id}/steps/previous", response_model=FlowSnapshot)
async def previous_step(session: AgentSession = Depends(get_session)):
    try:
        session.flow.prev_step()
    except BookingError as e:
        raise to_http_exception(e)
    return session.flow.snapshot()

@router.put("/{session_id}/steps/{step}", response_model=FlowSnapshot)
async def set_current_step(step: int, session: AgentSession = Depends(get_session)):
    try:
        session.flow.set_current_step(step)
    except BookingError as e:
        raise to_http_exception(e)
    return session.flow.snapshot()

# Seats and holds
@router.get("/{session_id}/seats", response_model=SeatsResponse)
async def get_seats(
    refresh: bool = Query(False, description="Force a seatmap refresh"),
    session: AgentSession = Depends(get_session)
):
    """Seat states reconciled against the latest server availability"""
    try:
        if refresh or session.seats.needs_refresh:
            await session.seats.refresh()
    except BookingError as e:
        raise to_http_exception(e)

    return SeatsResponse(
        seats=session.seats.seat_views(),
        needs_refresh=session.seats.needs_refresh,
        selected_seats=session.flow.state.selected_seats
    )

@router.post("/{session_id}/seats/refresh", response_model=SeatsResponse)
async def refresh_seats(session: AgentSession = Depends(get_session)):
    try:
        await session.seats.refresh()
    except BookingError as e:
        raise to_http_exception(e)

    return SeatsResponse(
        seats=session.seats.seat_views(),
        needs_refresh=session.seats.needs_refresh,
        selected_seats=session.flow.state.selected_seats
    )

@router.post("/{session_id}/seats/{seat_number}/toggle", response_model=SeatToggleResult)
async def toggle_seat(seat_number: str, session: AgentSession = Depends(get_session)):
    """Select (hold) or deselect (release) a seat"""
    try:
        state = await session.seats.toggle_seat(seat_number)
    except BookingError as e:
        raise to_http_exception(e)

    return SeatToggleResult(
        seat_number=seat_number,
        state=state,
        selected_seats=session.flow.state.selected_seats
    )

@router.get("/{session_id}/holds", response_model=HoldsResponse)
async def get_holds(session: AgentSession = Depends(get_session)):
    holds = session.holds.views()
    return HoldsResponse(holds=holds, total_holds=len(holds))

# Submission
@router.post("/{session_id}/booking", response_model=BookingResult)
async def create_booking(session: AgentSession = Depends(get_session)):
    """Validate, price and submit the booking"""
    try:
        return await session.flow.create_booking()
    except BookingError as e:
        raise to_http_exception(e)

@router.post("/{session_id}/reset", response_model=ResetResult)
async def reset_flow(
    release_holds: bool = Query(True, description="Release every held seat as well"),
    session: AgentSession = Depends(get_session)
):
    """Start over; keep holds when recovering from an error"""
    failed = []
    if release_holds:
        failed = await session.start_new_transaction()
    else:
        session.reset()

    return ResetResult(
        flow=session.flow.snapshot(),
        released_holds=release_holds,
        failed_releases=failed
    )

# Feedback
@router.get("/{session_id}/notifications", response_model=List[Notification])
async def get_notifications(session: AgentSession = Depends(get_session)):
    """Drain pending notifications"""
    return session.notifier.drain()

@router.get("/{session_id}/realtime", response_model=ConnectionStatus)
async def get_realtime_status(session: AgentSession = Depends(get_session)):
    return session.channel.status()
