import threading

from drivenav.logger import Logger


def test_writes_header_and_lines(tmp_path):
    path = tmp_path / "session.log"
    logger = Logger(str(path), echo=False)
    logger.log("Route calculated", {"length": 740.0})
    logger.close()
    logger.close()

    text = path.read_text()
    assert "drivenav session - " in text
    assert '[MainThread] Route calculated | {"length": 740.0}' in text


def test_line_names_the_calling_thread():
    logger = Logger(echo=False)
    lines = []
    worker = threading.Thread(target=lambda: lines.append(logger.format("tick")), name="drivenav-gps")
    worker.start()
    worker.join()
    assert lines[0].endswith("[drivenav-gps] tick")


def test_callback_receives_raw_message(capsys):
    seen = []
    logger = Logger(callback=lambda message, data: seen.append((message, data)))
    logger.log("Destination reached.")
    assert seen == [("Destination reached.", None)]
    assert "Destination reached." in capsys.readouterr().out
