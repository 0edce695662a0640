from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from config import DATABASE_URL

# SQLite (tests / desarrollo local) necesita compartir la conexión entre hilos
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# Crear el engine sincronico
engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)

# Crear la sesión sincronica
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Declarative base
Base = declarative_base()

# NO hacer create_all acá: main.py lo hace luego de importar los modelos


# Función para obtener la sesión
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
