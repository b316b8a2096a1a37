"""
Truth Audit - FastAPI Backend

Usage: uvicorn truth_audit.main:app --reload
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from truth_audit import __version__
from truth_audit.api.audit import router as audit_router

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

app = FastAPI(
    title="Truth Audit",
    description="Progressive audit pipeline scoring product claims against independent evidence",
    version=__version__
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API endpoints - all under /api/*
app.include_router(audit_router, prefix="/api")


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}
