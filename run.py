import uvicorn
from stripbooth.config import settings

if __name__ == "__main__":
    print("🚀 Starting StripBooth photo strip server...")
    print(f"🌐 API available at: http://{settings.host}:{settings.port}/docs")
    print(f"📁 Strips will be saved to: {settings.strips_dir} ({settings.storage_backend} storage)")
    print("\n🎯 Layouts:")
    print("   - Classic Strip: 4 photos, vertical")
    print("   - Vintage Strip: 3 photos, vertical")
    print("   - Horizontal Strip: 3 photos, side by side")
    print("   - 2x2 Grid: 4 photos")
    print(f"\n⏱️  Countdown: {settings.countdown_ticks} ticks, {settings.inter_shot_pause}s between photos")
    print("\n🛑 Press Ctrl+C to stop the server\n")

    uvicorn.run(
        "stripbooth.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
