# server/app.py
"""
Demo host application sitting behind the shield gate.

The routes stand in for a real application surface: a login endpoint
wired to the brute-force hooks and a small bookings API.
"""
import logging
import secrets
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from shield.config import ShieldConfig
from shield.gate import Gate
from shield.middleware import ShieldMiddleware, client_ip

logger = logging.getLogger(__name__)

# demo credentials, username -> password
USERS: Dict[str, str] = {
    "manager": "wash-and-go",
    "technician": "spotless",
}


class LoginRequest(BaseModel):
    username: str
    password: str


class Booking(BaseModel):
    customer: str
    plate: str
    service: str = "standard"


def create_app(gate: Optional[Gate] = None) -> FastAPI:
    if gate is None:
        gate = Gate(ShieldConfig.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Shield monitoring %s", "enabled" if gate.enabled else "disabled")
        yield
        gate.close()

    app = FastAPI(title="Shield demo", version="0.1.0", lifespan=lifespan)
    app.state.gate = gate
    app.add_middleware(ShieldMiddleware, gate=gate)

    bookings: List[dict] = []

    @app.get("/health")
    def health():
        return {"status": "ok", "shield": gate.enabled, "rules": len(gate.rule_engine.rules)}

    @app.post("/api/login")
    def login(body: LoginRequest, request: Request):
        ip = client_ip(request)
        if USERS.get(body.username) != body.password:
            gate.record_failure(ip)
            raise HTTPException(status_code=401, detail="Invalid credentials")

        gate.record_success(ip)
        return {"token": secrets.token_urlsafe(16), "username": body.username}

    @app.get("/api/bookings")
    def list_bookings(limit: int = 100):
        return bookings[-limit:]

    @app.post("/api/bookings", status_code=201)
    def add_booking(booking: Booking):
        bookings.append(booking.model_dump())
        return booking

    return app


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
