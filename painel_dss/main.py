import logging
import os
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from . import config
from .database import DocumentStore
from .errors import AuthenticationFailed, PainelError
from .schemas import (
    AdminLogin,
    DailyReport,
    Employee,
    EmployeeCreate,
    ManualRegistration,
    Message,
    PanelStats,
    RegistrationRequest,
    Shift,
    StatusChange,
    Tokens,
)
from .security import (
    authenticate_admin,
    create_access_token,
    ensure_bootstrap_admin,
    get_is_admin,
    normalize_email,
)
from .service import PainelService
from .status import format_timestamp

logger = logging.getLogger("painel.api")
logging.basicConfig(level=config.LOG_LEVEL)

app = FastAPI(title="Painel DSS API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_service() -> PainelService:
    store = DocumentStore.from_url()
    ensure_bootstrap_admin(store)
    return PainelService(store)


@app.exception_handler(PainelError)
async def painel_error_handler(request: Request, exc: PainelError):
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.message})


def _employee_card(employee: Employee) -> Dict[str, Any]:
    return {**jsonable_encoder(employee), "time_display": format_timestamp(employee.time)}


@app.get("/")
def health():
    return {"ok": True, "service": "painel-dss", "time": datetime.now(timezone.utc).isoformat()}


@app.get("/test")
def test_db(service: PainelService = Depends(get_service)):
    return {"ok": True, "db": "connected", "collections": service.store.collection_names()}


# Admin session
@app.post("/auth/admin", response_model=Tokens)
def admin_login(req: AdminLogin, service: PainelService = Depends(get_service)):
    if not authenticate_admin(service.store, req):
        service.notifier.notify("Credenciais de administrador inválidas.", "error")
        raise AuthenticationFailed("Credenciais de administrador inválidas.")
    token = create_access_token({"sub": normalize_email(req.email), "role": "admin"})
    service.notifier.notify("Login de administrador bem-sucedido!")
    return Tokens(access_token=token)


@app.get("/auth/me")
def whoami(is_admin: bool = Depends(get_is_admin)):
    return {"admin": is_admin}


# Employees
@app.get("/employees", response_model=List[Employee])
def list_employees(service: PainelService = Depends(get_service)):
    return service.list_employees()


@app.post("/employees", response_model=Employee, status_code=201)
def add_employee(
    payload: EmployeeCreate,
    is_admin: bool = Depends(get_is_admin),
    service: PainelService = Depends(get_service),
):
    return service.add_employee(payload.name, payload.matricula, is_admin)


@app.delete("/employees/{employee_id}", response_model=Message)
def delete_employee(
    employee_id: str,
    confirm: bool = False,
    is_admin: bool = Depends(get_is_admin),
    service: PainelService = Depends(get_service),
):
    employee = service.delete_employee(employee_id, is_admin, confirm)
    return Message(message=f"Usuário {employee.name} deletado com sucesso!")


@app.post("/employees/{employee_id}/status", response_model=Employee)
def change_status(
    employee_id: str,
    payload: StatusChange,
    is_admin: bool = Depends(get_is_admin),
    service: PainelService = Depends(get_service),
):
    return service.toggle_status(employee_id, payload.field, is_admin, payload.confirm)


@app.post("/employees/{employee_id}/shift", response_model=Employee)
def toggle_shift(employee_id: str, service: PainelService = Depends(get_service)):
    return service.toggle_shift(employee_id)


@app.post("/admin/reset", response_model=Message)
def reset_day(
    include_registrations: bool = False,
    is_admin: bool = Depends(get_is_admin),
    service: PainelService = Depends(get_service),
):
    count = service.reset_day(is_admin, include_registrations)
    return Message(message=f"Dados de status diário foram limpos! ({count} funcionários)")


# Registrations
@app.get("/registrations", response_model=List[ManualRegistration])
def list_registrations(service: PainelService = Depends(get_service)):
    return service.list_registrations()


@app.put("/registrations/{shift}", response_model=ManualRegistration)
def register(shift: Shift, payload: RegistrationRequest, service: PainelService = Depends(get_service)):
    return service.register(shift, payload.matricula, payload.subject)


@app.delete("/registrations/{registration_id}", response_model=Message)
def delete_registration(
    registration_id: str,
    is_admin: bool = Depends(get_is_admin),
    service: PainelService = Depends(get_service),
):
    service.delete_registration(registration_id, is_admin)
    return Message(message="Registro apagado.")


# Dashboard
@app.get("/stats", response_model=PanelStats)
def stats(service: PainelService = Depends(get_service)):
    return service.stats()


@app.get("/painel")
def painel(service: PainelService = Depends(get_service)):
    snap = service.view.snapshot
    regular_reg = snap.registration_for(Shift.REGULAR)
    special_reg = snap.registration_for(Shift.SPECIAL)
    return {
        "stats": jsonable_encoder(snap.stats),
        "regular_team": [_employee_card(e) for e in snap.regular_team],
        "special_team": [_employee_card(e) for e in snap.special_team],
        "registrations": {
            Shift.REGULAR.value: jsonable_encoder(regular_reg) if regular_reg else None,
            Shift.SPECIAL.value: jsonable_encoder(special_reg) if special_reg else None,
        },
    }


@app.get("/notifications")
def notifications(service: PainelService = Depends(get_service)):
    return service.notifier.recent()


@app.delete("/notifications/{notification_id}")
def dismiss_notification(notification_id: int, service: PainelService = Depends(get_service)):
    service.notifier.dismiss(notification_id)
    return {"ok": True}


# Reports
@app.get("/report", response_model=DailyReport)
def report(service: PainelService = Depends(get_service)):
    return service.report()


@app.get("/report.txt", response_class=PlainTextResponse)
def report_text(service: PainelService = Depends(get_service)):
    return service.report_text()


@app.get("/report.html", response_class=HTMLResponse)
def report_html(service: PainelService = Depends(get_service)):
    return service.report_html()


@app.get("/report/mailto")
def report_mailto(service: PainelService = Depends(get_service)):
    url, text = service.report_mailto()
    if url is None:
        return {"mailto": None, "fallback": "clipboard", "text": text}
    return {"mailto": url, "fallback": None}


def run():
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))


if __name__ == "__main__":
    run()
