import argparse
import asyncio
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import config
from filedrop.errors import FileDropError
from filedrop.routes.file_routes import router
from filedrop.state import FileDropState
from logger_config import setup_logger

# Logger setup
logger = setup_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    state = FileDropState.from_config()
    await state.open()
    report = await state.files.audit()
    if not report.consistent:
        logger.warning(
            f"Storage audit: {len(report.orphan_blobs)} orphan blobs, "
            f"{len(report.dangling_records)} dangling records"
        )
    app.state.filedrop = state
    yield
    await state.close()


app = FastAPI(title="File Drop Server", lifespan=lifespan)
app.include_router(router)


@app.exception_handler(FileDropError)
async def filedrop_error_handler(request: Request, exc: FileDropError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.code, "detail": str(exc)},
    )


async def run_audit(purge_orphans: bool) -> int:
    state = FileDropState.from_config()
    await state.open()
    try:
        report = await state.files.audit(purge_orphans=purge_orphans)
    finally:
        await state.close()

    print(f"Orphan blobs: {len(report.orphan_blobs)}")
    for stored_name in report.orphan_blobs:
        print(f"  {stored_name}")
    print(f"Dangling records: {len(report.dangling_records)}")
    for file_id in report.dangling_records:
        print(f"  {file_id}")
    if purge_orphans:
        print(f"Purged blobs: {len(report.purged_blobs)}")
    return 0 if report.consistent else 1


def main():
    parser = argparse.ArgumentParser(description='File drop upload server')
    parser.add_argument('--audit', action='store_true',
                        help='Compare stored blobs with the index and exit')
    parser.add_argument('--purge-orphans', action='store_true',
                        help='With --audit, delete blobs that have no index record')
    args = parser.parse_args()

    if args.purge_orphans and not args.audit:
        parser.error('--purge-orphans requires --audit')

    if args.audit:
        raise SystemExit(asyncio.run(run_audit(args.purge_orphans)))

    logger.info("Starting File Drop Server...")
    logger.info(f"Data directory: {config.DATA_DIR}")
    logger.info(f"Temporary directory: {config.TEMP_DIR}")
    logger.info(f"Database: {config.DATABASE_URL}")
    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
