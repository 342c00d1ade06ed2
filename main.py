# main.py
# Development entry point: python main.py
import uvicorn

from mpbot.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("mpbot.main:create_app", factory=True, host=settings.host, port=settings.port, reload=True)
