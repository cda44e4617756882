import os
import subprocess
import sys
import time
import webbrowser


def run_streamlit():
    base_dir = os.path.dirname(os.path.abspath(__file__))

    main_file = os.path.join(base_dir, "main.py")
    if not os.path.exists(main_file):
        print("main.py not found next to controller.py.")
        sys.exit(1)

    command = [sys.executable, "-m", "streamlit", "run", main_file]
    print(f"Starting survey app: {main_file}")

    process = subprocess.Popen(command)

    # Give the server a moment before opening the browser.
    time.sleep(2)
    webbrowser.open("http://localhost:8501")

    try:
        process.wait()
    except KeyboardInterrupt:
        print("\nStopping the survey server...")
        process.terminate()


if __name__ == "__main__":
    run_streamlit()
