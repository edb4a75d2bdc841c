"""`weather-dashboard` command: parse server options, configure logging, run uvicorn."""
import logging
import os

import typer

app = typer.Typer(add_completion=False, help="Weather Dashboard server (API + static frontend).")


@app.command()
def serve(
    port: int = typer.Option(3001, "--port", "-p", min=1, max=65535, help="Server port."),
    bind: str = typer.Option("127.0.0.1", "--bind", "-b", help="Bind address."),
    static: str | None = typer.Option(None, "--static", "-s", help="Static files path (default: ./static)."),
    weather: str | None = typer.Option(
        None, "--weather", "-w", help="Weather service URL (default: $WEATHER_SERVICE_URL or http://localhost:8080)."
    ),
    cors: bool = typer.Option(False, "--cors", "-c", help="Enable CORS headers."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # weather_dashboard.config reads the environment on import, so options go there first
    if static:
        os.environ["STATIC_PATH"] = static
    if weather:
        os.environ["WEATHER_SERVICE_URL"] = weather
    if cors:
        os.environ["CORS_ENABLED"] = "true"

    import uvicorn

    shown = "localhost" if bind == "0.0.0.0" else bind
    typer.echo(f"Weather Dashboard Server v1.0 on http://{shown}:{port}/")
    uvicorn.run(
        "weather_dashboard.main:app",
        host=bind,
        port=port,
        log_level="debug" if verbose else "info",
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
