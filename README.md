# glmquota

`glmquota` is a small command-line tool that keeps a GLM coding-plan quota
active. It sends a heartbeat request to start a new quota window. It then polls
the quota endpoint to confirm that the activation worked. It can also install
itself as a systemd user service (`glm.service`). That service keeps
reactivating the quota on a schedule.

## Installation

```
pip install .
```

This installs the `glm` command. The package requires Python 3.10 or newer and
depends on `requests` and `pyyaml`.

## Configuration

Settings are read from `~/.config/glm/config.yaml`. To use a different file,
pass `--config PATH` before the subcommand.

```yaml
api_key: placeholder
base_url: https://open.bigmodel.cn   # optional, this is the default
proxy: http://127.0.0.1:7890         # optional
schedule:                            # written by `glm install`
  timezone: "+8"
  times: ["05:00:00", "10:00:00"]
```

If the file already defines `api_key`, `base_url` or `proxy`, the environment
variables `API_KEY`, `BASE_URL` and `PROXY` override that value. A missing file
is treated as an empty configuration.

## Usage

Show the remaining quota and when it resets:

```
glm status
```

Send a heartbeat to activate the quota:

```
glm active            # does nothing if the quota is already partly used
glm active --force    # sends the heartbeat anyway
```

After the heartbeat, the quota is polled up to five times, three seconds apart,
to confirm that the usage has started.

Run as a daemon. The daemon activates the quota, sleeps until the next run,
and repeats until it receives SIGINT or SIGTERM. The next run is chosen as
follows:

- In auto mode, the next run is the quota reset time. If no reset time is
  known, it is four hours later.
- In manual mode, the next run is the earliest listed time of day.
- In either mode, the daemon wakes at the reset time instead if a quota reset
  is less than 20 minutes away, either from now or from the planned run.

If an activation fails, the daemon retries after one minute.

```
glm active --service
```

Install the systemd user service. This writes
`~/.config/systemd/user/glm.service`, saves the schedule to the config file,
and runs `systemctl --user daemon-reload` and
`systemctl --user enable --now glm.service`:

```
glm install --auto                        # follow the quota reset time
glm install +8 5:00 10:00 15:00 20:00     # fixed times in a timezone
glm install Asia/Shanghai 9 21:30:15
```

The timezone can be a UTC offset (`+8`, `UTC-5:30`, `UTC`) or an IANA name.
Times can be written as `H`, `H:M` or `H:M:S`. They are stored as `HH:MM:SS`,
in sorted order.

Stop and remove the service, and clear the schedule from the config file:

```
glm uninstall
```

Debug logging goes to stderr. Turn it on with the top-level flag, placed
before the subcommand:

```
glm --debug status
```

## Limitations

There is no `login` command. Set `api_key` in the config file yourself.
Scheduling works only through systemd user services, so `install` and
`uninstall` need `systemctl`.

## Development

```
pip install -e ".[test]"
pytest
```