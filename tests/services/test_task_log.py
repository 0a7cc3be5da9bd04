from datetime import datetime

from hostprov.services.task_log import TaskLog


def fixed_clock():
    return datetime(2024, 1, 2, 3, 4, 5)


def test_task_log_entries_carry_timestamp_and_caller(tmp_path):
    log = TaskLog(str(tmp_path / "log" / "backup.log"), "backup", "web01", clock=fixed_clock)

    log.start()
    log.entry("backup_directory", " * Cannot find path to backup source: /srv")
    log.output("snapshot 4bba301e saved")
    log.end()

    assert log.read() == (
        "Starting backup at: 2024-01-02 03:04:05\n"
        "Server:  web01\n"
        "\n"
        "[20240102030405 -- backup_directory]  * Cannot find path to backup source: /srv\n"
        "snapshot 4bba301e saved\n"
        "\n"
        "End of backup at: 2024-01-02 03:04:05\n"
    )


def test_task_log_is_cumulative(tmp_path):
    path = tmp_path / "backup.log"
    path.write_text("previous run\n", encoding="utf-8")
    log = TaskLog(str(path), "backup", "web01", clock=fixed_clock)

    log.output("")
    log.blank()

    assert log.read() == "previous run\n\n"
