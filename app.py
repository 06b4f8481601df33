# app.py
#
# FastAPI service for the futsal fantasy league.
# Exposes:
#   GET  /health
#   POST /auth/register | /auth/login | /auth/logout,  GET /auth/me
#   GET  /players, /players/teams, /rounds, /settings
#   GET  /lineup,  POST /lineup/check,  PUT /lineup
#   GET  /ranking, /dashboard
#   /admin/...  players, teams, rounds, scouts, settings (admins only)
#
# Start with:
#   uvicorn app:app --reload

import logging
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Depends, Request, Response  # type: ignore[import]
from fastapi.middleware.cors import CORSMiddleware  # type: ignore[import]
from fastapi.responses import JSONResponse  # type: ignore[import]
from pydantic import BaseModel  # type: ignore[import]

import config  # type: ignore[import]
from accounts import DuplicateAccountError, ProfileMissingError, login, register  # type: ignore[import]
from auth_security import create_session_token, parse_session_token  # type: ignore[import]
from backend import Backend, BackendError, build_backend  # type: ignore[import]
from league import LeagueRepository, NotFoundError  # type: ignore[import]
from models import Player, Round, User  # type: ignore[import]
from roster import Roster, RosterError, is_starter_slot  # type: ignore[import]
from validation import ValidationError  # type: ignore[import]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic view models
# ---------------------------------------------------------------------------

class UserView(BaseModel):
    id: str
    email: str
    team_name: str
    role: str
    cartoletas: float
    total_points: float


class PlayerView(BaseModel):
    id: str
    name: str
    position: str                 # GOL / FIX / ALA / PIV
    team: str
    price: float
    active: bool
    photo_url: Optional[str] = None


class RoundView(BaseModel):
    id: str
    name: str
    status: str                   # upcoming / active / finished
    created_at: Optional[str] = None


class SlotView(BaseModel):
    slot: str                     # GOL, FIX, ALA1, ALA2, PIV, RES1..RES3
    starter: bool
    is_captain: bool = False
    player: Optional[PlayerView] = None


class RosterView(BaseModel):
    round_id: Optional[str] = None
    budget_limit: float
    starter_cost: float
    remaining_budget: float
    filled_slots: int
    captain_id: Optional[str] = None
    complete: bool
    slots: List[SlotView]


class RegisterRequest(BaseModel):
    team_name: str
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class LineupRequest(BaseModel):
    """{slot: player_id} for the whole lineup plus the captain."""
    slots: Dict[str, Optional[str]] = {}
    captain_id: Optional[str] = None


class LineupChangeRequest(LineupRequest):
    """
    One change applied to the proposed lineup in `slots`:
      add     - player_id into the first free starter/reserve slot
      place   - player_id into `slot`
      remove  - player_id out of the lineup
      captain - toggle captain on player_id
      clear   - empty the lineup
    """
    action: str
    player_id: Optional[str] = None
    slot: Optional[str] = None
    starter: bool = True


class PlayerRequest(BaseModel):
    name: str
    position: str
    team: str
    price: float
    photo_url: Optional[str] = None
    active: Optional[bool] = None


class SquadPlayer(BaseModel):
    name: str
    position: str
    price: float
    photo_url: Optional[str] = None


class SquadRequest(BaseModel):
    team_name: str
    players: List[SquadPlayer]


class RoundRequest(BaseModel):
    name: str


class ScoutEntry(BaseModel):
    player_id: str
    goals: int = 0
    assists: int = 0
    shots_on_target: int = 0
    saves: int = 0
    clean_sheet: int = 0
    own_goals: int = 0
    red_cards: int = 0
    fouls: int = 0


class ScoutsRequest(BaseModel):
    scouts: List[ScoutEntry]


class SettingsView(BaseModel):
    budget_limit: float


class RankingEntry(BaseModel):
    position: int
    id: str
    team_name: str
    total_points: float
    cartoletas: float


class ScoutView(BaseModel):
    player_id: str
    player: Optional[PlayerView] = None
    points: float
    goals: int
    assists: int


class HistoryEntry(BaseModel):
    fantasy_team_id: str
    round: Optional[RoundView] = None
    total_points: float
    budget_used: float
    created_at: Optional[str] = None


class DashboardView(BaseModel):
    user: UserView
    position: Optional[int] = None
    ranking: List[RankingEntry]
    rounds: List[RoundView]
    last_round: Optional[RoundView] = None
    top_scouts: List[ScoutView]
    history: List[HistoryEntry]


class StatsView(BaseModel):
    players: int
    active_players: int
    teams: int
    rounds: int
    users: int


class SettleResult(BaseModel):
    round: RoundView
    teams: int
    users: int
    prices_updated: int


# ---------------------------------------------------------------------------
# Helper functions to map domain objects -> API models
# ---------------------------------------------------------------------------

def _user_view(u: User) -> UserView:
    return UserView(
        id=u.id,
        email=u.email,
        team_name=u.team_name,
        role=u.role,
        cartoletas=u.cartoletas,
        total_points=u.total_points,
    )


def _player_view(p: Optional[Player]) -> Optional[PlayerView]:
    if p is None:
        return None
    return PlayerView(
        id=p.id,
        name=p.name,
        position=p.position,
        team=p.team,
        price=p.price,
        active=p.active,
        photo_url=p.photo_url,
    )


def _round_view(r: Optional[Round]) -> Optional[RoundView]:
    if r is None:
        return None
    return RoundView(id=r.id, name=r.name, status=r.status, created_at=r.created_at)


def _roster_view(roster: Roster, round_id: Optional[str] = None) -> RosterView:
    slots = [
        SlotView(
            slot=slot,
            starter=is_starter_slot(slot),
            is_captain=p is not None and p.id == roster.captain_id,
            player=_player_view(p),
        )
        for slot, p in roster.slots.items()
    ]
    try:
        roster.check_complete()
        complete = True
    except RosterError:
        complete = False
    return RosterView(
        round_id=round_id,
        budget_limit=roster.budget_limit,
        starter_cost=roster.starter_cost(),
        remaining_budget=roster.remaining_budget(),
        filled_slots=roster.filled_slots(),
        captain_id=roster.captain_id,
        complete=complete,
        slots=slots,
    )


def _ranking_entries(users: List[User]) -> List[RankingEntry]:
    return [
        RankingEntry(
            position=i + 1,
            id=u.id,
            team_name=u.team_name,
            total_points=u.total_points,
            cartoletas=u.cartoletas,
        )
        for i, u in enumerate(users)
    ]


def _player_payload(req: PlayerRequest) -> dict:
    return {
        "name": req.name,
        "position": req.position,
        "team": req.team,
        "price": req.price,
        "photo_url": req.photo_url,
        "active": req.active,
    }


# ---------------------------------------------------------------------------
# FastAPI app + dependencies
# ---------------------------------------------------------------------------

app = FastAPI(title=config.APP_NAME, version=config.APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_backend: Optional[Backend] = None


@app.on_event("startup")
def _on_startup():
    config.configure_logging()
    logger.info("%s %s starting (backend=%s)", config.APP_NAME, config.APP_VERSION, config.BACKEND)


def get_backend() -> Backend:
    global _backend
    if _backend is None:
        _backend = build_backend()
    return _backend


def get_repo(backend: Backend = Depends(get_backend)) -> LeagueRepository:
    return LeagueRepository(backend)


def get_current_user(request: Request, repo: LeagueRepository = Depends(get_repo)) -> User:
    token = request.cookies.get(config.SESSION_COOKIE)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user_id = parse_session_token(token)
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    user = repo.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def get_admin_user(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Access denied: administrators only")
    return user


@app.exception_handler(BackendError)
async def _backend_error(request: Request, exc: BackendError):
    logger.error("Backend failure on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=502, content={"detail": exc.message})


@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(RosterError)
async def _roster_error(request: Request, exc: RosterError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(NotFoundError)
async def _not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


def _set_session(response: Response, user: User) -> None:
    response.set_cookie(
        key=config.SESSION_COOKIE,
        value=create_session_token(user.id),
        httponly=True,
        samesite="lax",
    )


# ---------------------------------------------------------------------------
# Auth endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    return {"status": "ok", "version": config.APP_VERSION}


@app.post("/auth/register", response_model=UserView)
def register_user(req: RegisterRequest, response: Response, backend: Backend = Depends(get_backend)):
    try:
        user = register(backend, req.team_name, req.email, req.password)
    except DuplicateAccountError:
        raise HTTPException(status_code=400, detail="Email already registered")
    _set_session(response, user)
    return _user_view(user)


@app.post("/auth/login", response_model=UserView)
def login_user(req: LoginRequest, response: Response, backend: Backend = Depends(get_backend)):
    try:
        user = login(backend, req.email, req.password)
    except ProfileMissingError:
        raise HTTPException(status_code=401, detail="Could not load user profile")
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    _set_session(response, user)
    return _user_view(user)


@app.post("/auth/logout")
def logout(response: Response):
    response.delete_cookie(config.SESSION_COOKIE)
    return {"status": "ok"}


@app.get("/auth/me", response_model=UserView)
def me(user: User = Depends(get_current_user)):
    return _user_view(user)


# ---------------------------------------------------------------------------
# Market
# ---------------------------------------------------------------------------

@app.get("/players", response_model=List[PlayerView])
def list_players(
    position: Optional[str] = None,
    team: Optional[str] = None,
    search: Optional[str] = None,
    active_only: bool = True,
    user: User = Depends(get_current_user),
    repo: LeagueRepository = Depends(get_repo),
):
    players = repo.list_players(position=position, team=team, search=search, active_only=active_only)
    return [_player_view(p) for p in players]


@app.get("/players/teams", response_model=List[str])
def list_teams(user: User = Depends(get_current_user), repo: LeagueRepository = Depends(get_repo)):
    return repo.team_names()


@app.get("/rounds", response_model=List[RoundView])
def list_rounds(user: User = Depends(get_current_user), repo: LeagueRepository = Depends(get_repo)):
    return [_round_view(r) for r in repo.list_rounds()]


@app.get("/settings", response_model=SettingsView)
def get_settings(user: User = Depends(get_current_user), repo: LeagueRepository = Depends(get_repo)):
    return SettingsView(budget_limit=repo.budget_limit())


# ---------------------------------------------------------------------------
# Lineup
# ---------------------------------------------------------------------------

def _require_open_round(repo: LeagueRepository) -> Round:
    rnd = repo.open_round()
    if rnd is None:
        raise HTTPException(status_code=404, detail="No round open for lineups")
    return rnd


@app.get("/lineup", response_model=RosterView)
def get_lineup(user: User = Depends(get_current_user), repo: LeagueRepository = Depends(get_repo)):
    """
    The user's saved lineup for the round currently open for picks
    (an empty roster if nothing was saved yet).
    """
    rnd = _require_open_round(repo)
    _, roster = repo.load_roster(user.id, rnd.id)
    return _roster_view(roster, rnd.id)


@app.post("/lineup/check", response_model=RosterView)
def check_lineup_change(
    req: LineupChangeRequest,
    user: User = Depends(get_current_user),
    repo: LeagueRepository = Depends(get_repo),
):
    """
    Apply one change to a proposed lineup and return the result, or 400 with
    the reason it was rejected. Nothing is stored.
    """
    action = req.action.lower()
    if action == "clear":
        return _roster_view(Roster(budget_limit=repo.budget_limit()))

    ids = [pid for pid in req.slots.values() if pid]
    if req.player_id:
        ids.append(req.player_id)
    players = repo.players_by_id(ids)
    # Only the change itself is checked here; PUT /lineup checks the whole lineup.
    roster = Roster.load(req.slots, players, req.captain_id, budget_limit=repo.budget_limit())

    if not req.player_id:
        raise HTTPException(status_code=400, detail="player_id is required")
    player = players.get(req.player_id)

    if action == "remove":
        roster.remove(req.player_id)
    elif action == "captain":
        roster.set_captain(req.player_id)
    elif action in ("add", "place"):
        if player is None:
            raise HTTPException(status_code=404, detail=f"Player {req.player_id} not found")
        if action == "add":
            roster.add(player, starter=req.starter)
        else:
            if not req.slot:
                raise HTTPException(status_code=400, detail="slot is required")
            roster.place(req.slot, player)
    else:
        raise HTTPException(status_code=400, detail=f"Unknown action {req.action!r}")
    return _roster_view(roster)


@app.put("/lineup", response_model=RosterView)
def save_lineup(
    req: LineupRequest,
    user: User = Depends(get_current_user),
    repo: LeagueRepository = Depends(get_repo),
):
    rnd = _require_open_round(repo)
    roster = repo.build_roster(req.slots, req.captain_id)
    repo.save_lineup(user, rnd.id, roster)
    return _roster_view(roster, rnd.id)


# ---------------------------------------------------------------------------
# Ranking / dashboard
# ---------------------------------------------------------------------------

@app.get("/ranking", response_model=List[RankingEntry])
def get_ranking(
    limit: int = config.RANKING_LIMIT,
    user: User = Depends(get_current_user),
    repo: LeagueRepository = Depends(get_repo),
):
    return _ranking_entries(repo.ranking(limit=limit))


@app.get("/dashboard", response_model=DashboardView)
def get_dashboard(user: User = Depends(get_current_user), repo: LeagueRepository = Depends(get_repo)):
    data = repo.dashboard(user.id)
    top_scouts = [
        ScoutView(
            player_id=str(s["player_id"]),
            player=_player_view(s.get("player")),
            points=float(s.get("points") or 0.0),
            goals=int(s.get("goals") or 0),
            assists=int(s.get("assists") or 0),
        )
        for s in data["top_scouts"]
    ]
    history = [
        HistoryEntry(
            fantasy_team_id=str(h["id"]),
            round=_round_view(h.get("round")),
            total_points=float(h.get("total_points") or 0.0),
            budget_used=float(h.get("budget_used") or 0.0),
            created_at=h.get("created_at"),
        )
        for h in data["history"]
    ]
    return DashboardView(
        user=_user_view(user),
        position=data["position"],
        ranking=_ranking_entries(data["ranking"]),
        rounds=[_round_view(r) for r in data["rounds"]],
        last_round=_round_view(data["last_round"]),
        top_scouts=top_scouts,
        history=history,
    )


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

@app.get("/admin/stats", response_model=StatsView)
def admin_stats(admin: User = Depends(get_admin_user), repo: LeagueRepository = Depends(get_repo)):
    return StatsView(**repo.stats())


@app.get("/admin/players", response_model=List[PlayerView])
def admin_list_players(admin: User = Depends(get_admin_user), repo: LeagueRepository = Depends(get_repo)):
    """Every player, inactive ones included."""
    return [_player_view(p) for p in repo.list_players()]


@app.post("/admin/players", response_model=PlayerView)
def admin_create_player(
    req: PlayerRequest,
    admin: User = Depends(get_admin_user),
    repo: LeagueRepository = Depends(get_repo),
):
    return _player_view(repo.create_player(_player_payload(req)))


@app.put("/admin/players/{player_id}", response_model=PlayerView)
def admin_update_player(
    player_id: str,
    req: PlayerRequest,
    admin: User = Depends(get_admin_user),
    repo: LeagueRepository = Depends(get_repo),
):
    return _player_view(repo.update_player(player_id, _player_payload(req)))


@app.delete("/admin/players/{player_id}")
def admin_delete_player(
    player_id: str,
    admin: User = Depends(get_admin_user),
    repo: LeagueRepository = Depends(get_repo),
):
    player = repo.delete_player(player_id)
    return {"status": "ok", "deleted": player.name}


@app.post("/admin/teams", response_model=List[PlayerView])
def admin_create_squad(
    req: SquadRequest,
    admin: User = Depends(get_admin_user),
    repo: LeagueRepository = Depends(get_repo),
):
    players = [
        {"name": p.name, "position": p.position, "price": p.price, "photo_url": p.photo_url}
        for p in req.players
    ]
    return [_player_view(p) for p in repo.create_squad(req.team_name, players)]


@app.delete("/admin/teams/{team_name}")
def admin_delete_squad(
    team_name: str,
    admin: User = Depends(get_admin_user),
    repo: LeagueRepository = Depends(get_repo),
):
    return {"status": "ok", "deleted_players": repo.delete_squad(team_name)}


@app.post("/admin/rounds", response_model=RoundView)
def admin_create_round(
    req: RoundRequest,
    admin: User = Depends(get_admin_user),
    repo: LeagueRepository = Depends(get_repo),
):
    return _round_view(repo.create_round(req.name))


@app.put("/admin/rounds/{round_id}", response_model=RoundView)
def admin_rename_round(
    round_id: str,
    req: RoundRequest,
    admin: User = Depends(get_admin_user),
    repo: LeagueRepository = Depends(get_repo),
):
    return _round_view(repo.rename_round(round_id, req.name))


@app.delete("/admin/rounds/{round_id}")
def admin_delete_round(
    round_id: str,
    admin: User = Depends(get_admin_user),
    repo: LeagueRepository = Depends(get_repo),
):
    rnd = repo.delete_round(round_id)
    return {"status": "ok", "deleted": rnd.name}


@app.post("/admin/rounds/{round_id}/activate", response_model=RoundView)
def admin_activate_round(
    round_id: str,
    admin: User = Depends(get_admin_user),
    repo: LeagueRepository = Depends(get_repo),
):
    return _round_view(repo.activate_round(round_id))


@app.post("/admin/rounds/{round_id}/reopen", response_model=RoundView)
def admin_reopen_round(
    round_id: str,
    admin: User = Depends(get_admin_user),
    repo: LeagueRepository = Depends(get_repo),
):
    return _round_view(repo.reopen_round(round_id))


@app.post("/admin/rounds/{round_id}/finish", response_model=SettleResult)
def admin_finish_round(
    round_id: str,
    admin: User = Depends(get_admin_user),
    repo: LeagueRepository = Depends(get_repo),
):
    """
    Close the round: score every fantasy team from the recorded scouts,
    refresh user totals and revalue the scouted players.
    """
    summary = repo.finish_round(round_id)
    return SettleResult(
        round=_round_view(repo.get_round(round_id)),
        teams=summary["teams"],
        users=summary["users"],
        prices_updated=summary["prices_updated"],
    )


@app.post("/admin/rounds/{round_id}/scouts", response_model=List[ScoutView])
def admin_record_scouts(
    round_id: str,
    req: ScoutsRequest,
    admin: User = Depends(get_admin_user),
    repo: LeagueRepository = Depends(get_repo),
):
    entries = [
        {
            "player_id": s.player_id,
            "goals": s.goals,
            "assists": s.assists,
            "shots_on_target": s.shots_on_target,
            "saves": s.saves,
            "clean_sheet": s.clean_sheet,
            "own_goals": s.own_goals,
            "red_cards": s.red_cards,
            "fouls": s.fouls,
        }
        for s in req.scouts
    ]
    rows = repo.record_scouts(round_id, entries)
    return [
        ScoutView(
            player_id=str(r["player_id"]),
            points=float(r["points"]),
            goals=int(r["goals"]),
            assists=int(r["assists"]),
        )
        for r in rows
    ]


@app.put("/admin/settings", response_model=SettingsView)
def admin_update_settings(
    req: SettingsView,
    admin: User = Depends(get_admin_user),
    repo: LeagueRepository = Depends(get_repo),
):
    return SettingsView(budget_limit=repo.set_budget_limit(req.budget_limit))
