from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import CORS_ORIGINS
from database.conexion import Base, engine
import models  # 👈 asegura que todos los modelos estén registrados
from services.errors import HotelError
from utils.logging_utils import log_error, log_event
from utils.rate_limiter import setup_rate_limiting

try:
    Base.metadata.create_all(bind=engine)
    log_event("db", "sistema", "Inicio", "Tablas creadas (o ya existian)")
except Exception as e:
    log_error("db", "sistema", "Error creando tablas", str(e))

app = FastAPI(title="Hotel Core - Auditoría nocturna y folios")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],         # GET, POST, PUT, DELETE...
    allow_headers=["*"],
)

setup_rate_limiting(app)


@app.exception_handler(HotelError)
async def hotel_error_handler(request: Request, exc: HotelError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


from endpoints import hotels, rooms, reservations, folios, night_audit, events
app.include_router(hotels.router)
app.include_router(rooms.router)
app.include_router(reservations.router)
app.include_router(folios.router)
app.include_router(night_audit.router)
app.include_router(events.router)


@app.get("/")
def read_root():
    return {"message": "Hotel Core API"}
