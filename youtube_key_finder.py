#!/usr/bin/env python3
"""
YouTube Key Finder
Retrieves a key usable for *some* YouTube Data API queries from the scripts
that the Google APIs Explorer embed loads on the Google Developers website.

How it works:
1. Fetch the explorer bootstrap script and collect the literal arguments of its
   unflattenKeylistIntoAnswers(...) calls ("script keys")
2. Fetch one permutation script per script key, concurrently
3. Take the literal assigned to API_KEY in the first script that has one

The retrieved key can then be used like:
  curl 'https://content.googleapis.com/youtube/v3/channels?part=snippet&forUsername=<username>&key=<key>' \\
       -H 'X-Origin: https://developers.google.com'

The upstream scripts are undocumented and may change shape at any time.
"""
import requests
import esprima
import urllib3
import urllib.parse
import argparse
import logging
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

logger = logging.getLogger('youtube_key_finder')

# ==============================================================================
# CONFIGURATION
# ==============================================================================
EXPLORER_SCHEME = "https"
EXPLORER_HOST = "apis-explorer.appspot.com"
EXPLORER_PORT = 443

# GWT bootstrap script, lists the permutation names
BOOTSTRAP_PATH = "/embedded/com.google.api.explorer.Embedded.nocache.js"

# Permutation script: SCRIPT_PATH_PREFIX + <script key> + SCRIPT_PATH_SUFFIX
SCRIPT_PATH_PREFIX = "/embedded/"
SCRIPT_PATH_SUFFIX = ".cache.js"

KEY_LIST_CALLEE = "unflattenKeylistIntoAnswers"
API_KEY_NAME = "API_KEY"

# Fields of an esprima node that hold child statements/declarations
CHILD_FIELDS = ('body', 'block', 'declarations')

DEFAULT_TIMEOUT = 10
DEFAULT_MAX_WORKERS = 8

USER_AGENT = 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'

# Key check against the Data API
CHECK_URL = "https://content.googleapis.com/youtube/v3/channels"
CHECK_ORIGIN = "https://developers.google.com"
CHECK_USERNAME = "GoogleDevelopers"

DEFAULT_PORTS = {"https": 443, "http": 80}


@dataclass(frozen=True)
class FinderConfig:
    """Where to look and what to look for. Defaults point at the live explorer."""
    scheme: str = EXPLORER_SCHEME
    host: str = EXPLORER_HOST
    port: int = EXPLORER_PORT
    bootstrap_path: str = BOOTSTRAP_PATH
    script_path_prefix: str = SCRIPT_PATH_PREFIX
    script_path_suffix: str = SCRIPT_PATH_SUFFIX
    key_list_callee: str = KEY_LIST_CALLEE
    api_key_name: str = API_KEY_NAME
    timeout: float = DEFAULT_TIMEOUT
    verify: bool = True
    max_workers: int = DEFAULT_MAX_WORKERS
    user_agent: str = USER_AGENT

    @property
    def base_url(self):
        if DEFAULT_PORTS.get(self.scheme) == self.port:
            return f"{self.scheme}://{self.host}"
        return f"{self.scheme}://{self.host}:{self.port}"

    def url(self, path):
        return self.base_url + path

    @property
    def bootstrap_url(self):
        return self.url(self.bootstrap_path)

    def script_url(self, key):
        return self.url(f"{self.script_path_prefix}{key}{self.script_path_suffix}")


# ==============================================================================
# ERRORS
# ==============================================================================
class KeyFinderError(Exception):
    """Base class for every failure raised by the finder."""


class TransportError(KeyFinderError):
    """A fetch failed at the connection or HTTP level."""

    def __init__(self, url, cause):
        self.url = url
        self.cause = cause
        super().__init__(f"Error while fetching [{url}]: {cause}")


class ExtractionError(KeyFinderError):
    """A permutation script could not be parsed or held no API key."""

    def __init__(self, key, message):
        self.key = key
        self.message = message
        super().__init__(f"{message} [{key}]")


class AllCandidatesFailedError(KeyFinderError):
    """
    Every script key failed, or there were none to try.
    Carries the last failure only; earlier ones are logged, not kept.
    """

    def __init__(self, last_error=None):
        self.last_error = last_error
        if last_error is None:
            message = "No script keys to try"
        else:
            message = f"All script keys failed, last error: {last_error}"
        super().__init__(message)


# ==============================================================================
# TRANSPORT & PARSING
# ==============================================================================
def new_session(config=None):
    """requests.Session with a browser-like User-Agent."""
    config = config or FinderConfig()
    session = requests.Session()
    session.headers.update({
        'User-Agent': config.user_agent,
        'Accept': '*/*',
        'Accept-Language': 'en-US,en;q=0.9',
    })
    return session


def fetch_text(session, url, config):
    """GET `url` and return the whole body as text. Raises TransportError."""
    logger.debug("GET %s", url)
    try:
        r = session.get(url, timeout=config.timeout, verify=config.verify)
    except requests.exceptions.RequestException as e:
        raise TransportError(url, e) from e

    if r.status_code != 200:
        raise TransportError(url, f"HTTP {r.status_code}")

    # no charset header means requests guesses ISO-8859-1; scripts are UTF-8
    if 'charset' not in r.headers.get('Content-Type', ''):
        r.encoding = 'utf-8'
    return r.text


def parse_source(code):
    """Parse JavaScript source with esprima. Parser errors propagate."""
    try:
        return esprima.parseScript(code)
    except Exception:
        return esprima.parseModule(code)


# ==============================================================================
# TREE SEARCH
# ==============================================================================
def _is_node(value):
    return value is not None and hasattr(value, 'type')


def _children(node):
    """Child nodes under body, block and declarations, in that order."""
    children = []
    for field in CHILD_FIELDS:
        value = getattr(node, field, None)
        if isinstance(value, list):
            children.extend(item for item in value if _is_node(item))
        elif _is_node(value):
            children.append(value)
    return children


def find_nodes(test, node):
    """
    Return every node under (and including) `node` for which test(node) is true.

    Recurses through `body`, `block` and `declarations` only. Each child
    subtree's matches come first, then `node` itself if it matches.
    A missing root gives [].
    """
    if not _is_node(node):
        return []

    results = []
    for child in _children(node):
        results.extend(find_nodes(test, child))

    if test(node):
        results.append(node)
    return results


# ==============================================================================
# CLASS: SCRIPT KEY EXTRACTOR (Stage 1)
# ==============================================================================
class ScriptKeyExtractor:
    """
    Reads the explorer bootstrap script and returns the permutation names
    passed to unflattenKeylistIntoAnswers(...).
    """

    def __init__(self, session, config=None):
        self.session = session
        self.config = config or FinderConfig()

    def fetch(self):
        code = fetch_text(self.session, self.config.bootstrap_url, self.config)
        keys = self.extract(code)
        logger.debug("Found %d script keys", len(keys))
        return keys

    def extract(self, code):
        """Parse bootstrap source and return its script keys. Parse errors are not caught."""
        tree = parse_source(code)
        calls = find_nodes(self.is_key_list_call, tree)

        keys = []
        for statement in calls:
            keys.extend(literal_arguments(statement.expression))
        return keys

    def is_key_list_call(self, node):
        if node.type != 'ExpressionStatement':
            return False
        expression = getattr(node, 'expression', None)
        if not _is_node(expression) or expression.type != 'CallExpression':
            return False
        callee = getattr(expression, 'callee', None)
        return callee is not None and getattr(callee, 'name', None) == self.config.key_list_callee


def literal_arguments(call):
    """Values of the truthy Literal arguments of a call, in order."""
    return [
        argument.value
        for argument in getattr(call, 'arguments', None) or []
        if getattr(argument, 'type', None) == 'Literal' and getattr(argument, 'value', None)
    ]


# ==============================================================================
# CLASS: CREDENTIAL EXTRACTOR (Stage 2)
# ==============================================================================
class CredentialExtractor:
    """
    Reads one permutation script and returns the literal assigned to API_KEY.
    Every failure other than transport is reported as ExtractionError.

    Without an injected session each fetch opens its own from `session_factory`
    (new_session by default), so concurrent fetches share no cookie jar or pool.
    """

    def __init__(self, session=None, config=None, session_factory=None):
        self.session = session
        self.config = config or FinderConfig()
        self.session_factory = session_factory

    def fetch(self, key):
        url = self.config.script_url(key)
        if self.session is not None:
            code = fetch_text(self.session, url, self.config)
        else:
            factory = self.session_factory or new_session
            with factory(self.config) as session:
                code = fetch_text(session, url, self.config)
        return self.extract(key, code)

    def extract(self, key, code):
        try:
            tree = parse_source(code)
            declarators = find_nodes(self.is_api_key_declarator, tree)
            values = [value for value in map(initializer_value, declarators) if value is not None]
        except Exception as e:
            raise ExtractionError(key, f"Error while parsing: {e}") from e

        if not values:
            raise ExtractionError(key, "No credential found for key")

        # later declarations override earlier ones
        return values[-1]

    def is_api_key_declarator(self, node):
        if node.type != 'VariableDeclarator':
            return False
        identifier = getattr(node, 'id', None)
        return identifier is not None and getattr(identifier, 'name', None) == self.config.api_key_name


def initializer_value(declarator):
    init = getattr(declarator, 'init', None)
    if init is None or getattr(init, 'type', None) != 'Literal':
        return None
    return init.value


# ==============================================================================
# CLASS: RACE RESOLVER
# ==============================================================================
class RaceResolver:
    """
    Runs `attempt(key)` for every key concurrently and returns the first
    successful result in completion order. Raises AllCandidatesFailedError
    only once every attempt has failed.
    """

    def __init__(self, attempt, max_workers=DEFAULT_MAX_WORKERS):
        self.attempt = attempt
        self.max_workers = max_workers

    def resolve(self, keys):
        keys = list(keys)
        if not keys:
            raise AllCandidatesFailedError()

        pool = ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(keys))))
        try:
            futures = {pool.submit(self.attempt, key): key for key in keys}
            last_error = None
            for future in as_completed(futures):
                key = futures[future]
                try:
                    result = future.result()
                except Exception as e:
                    logger.warning("Script key %s failed: %s", key, e)
                    last_error = e
                    continue
                logger.info("Got API key from script key %s", key)
                return result
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        raise AllCandidatesFailedError(last_error) from last_error


# ==============================================================================
# PUBLIC API
# ==============================================================================
class KeyFinder:
    """
    Ties both stages together. `session` serves the bootstrap fetch; every
    permutation fetch gets a fresh session from `session_factory`.
    """

    def __init__(self, session=None, config=None, session_factory=None):
        self.config = config or FinderConfig()
        self.session = session or new_session(self.config)
        self.script_keys = ScriptKeyExtractor(self.session, self.config)
        self.credentials = CredentialExtractor(None, self.config, session_factory)

    def get_key(self):
        # exactly one bootstrap fetch per call; fan-out happens in stage 2 only
        keys = self.script_keys.fetch()
        resolver = RaceResolver(self.credentials.fetch, self.config.max_workers)
        return resolver.resolve(keys)


def get_key(session=None, config=None, session_factory=None):
    """
    Get a key that can be used for *some* queries to the YouTube API.

    Raises TransportError if the bootstrap script cannot be fetched, the
    parser's own error if it cannot be parsed, and AllCandidatesFailedError
    if no permutation script yields a key.
    """
    return KeyFinder(session, config, session_factory).get_key()


def get_key_async(session=None, config=None, session_factory=None):
    """Same as get_key() but returns a concurrent.futures.Future."""
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(get_key, session, config, session_factory)
    executor.shutdown(wait=False)
    return future


# ==============================================================================
# KEY CHECK
# ==============================================================================
@dataclass(frozen=True)
class KeyCheck:
    valid: bool
    status_code: int
    title: str = None


def check_key(key, session=None, username=CHECK_USERNAME, config=None):
    """Look up a channel with `key` the way the explorer does."""
    config = config or FinderConfig()
    session = session or new_session(config)
    query = urllib.parse.urlencode({'part': 'snippet', 'forUsername': username, 'key': key})
    url = f"{CHECK_URL}?{query}"

    logger.debug("GET %s", CHECK_URL)
    try:
        r = session.get(url, headers={'X-Origin': CHECK_ORIGIN},
                        timeout=config.timeout, verify=config.verify)
    except requests.exceptions.RequestException as e:
        raise TransportError(CHECK_URL, e) from e

    if r.status_code != 200:
        return KeyCheck(valid=False, status_code=r.status_code)

    try:
        items = r.json().get('items') or []
    except ValueError:
        return KeyCheck(valid=False, status_code=r.status_code)

    if not items:
        return KeyCheck(valid=False, status_code=r.status_code)

    title = (items[0].get('snippet') or {}).get('title')
    return KeyCheck(valid=True, status_code=r.status_code, title=title)


# ==============================================================================
# CLI
# ==============================================================================
def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description='Retrieve a YouTube Data API key from the Google APIs Explorer scripts',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Print a key
  youtube-key-finder --quiet

  # Find a key and check it against the Data API
  youtube-key-finder --check --username GoogleDevelopers

  # List the candidate script keys only
  youtube-key-finder --script-keys
        """
    )

    parser.add_argument('--host', type=str, default=EXPLORER_HOST, help=f'Explorer host (default: {EXPLORER_HOST})')
    parser.add_argument('--port', type=int, default=EXPLORER_PORT, help=f'Explorer port (default: {EXPLORER_PORT})')
    parser.add_argument('--timeout', type=float, default=DEFAULT_TIMEOUT, help=f'Per-request timeout in seconds (default: {DEFAULT_TIMEOUT})')
    parser.add_argument('--workers', type=int, default=DEFAULT_MAX_WORKERS, help=f'Max concurrent script fetches (default: {DEFAULT_MAX_WORKERS})')
    parser.add_argument('--insecure', action='store_true', help='Skip TLS certificate verification')
    parser.add_argument('--script-keys', action='store_true', help='Only print the candidate script keys')
    parser.add_argument('--check', action='store_true', help='Check the key against the YouTube Data API')
    parser.add_argument('--username', type=str, default=CHECK_USERNAME, help=f'Channel username used by --check (default: {CHECK_USERNAME})')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')
    parser.add_argument('--quiet', action='store_true', help='Print the key only')

    return parser.parse_args(argv)


def config_from_args(args):
    return FinderConfig(
        host=args.host,
        port=args.port,
        timeout=args.timeout,
        verify=not args.insecure,
        max_workers=args.workers,
    )


def main(argv=None):
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    if args.insecure:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def say(message):
        if not args.quiet:
            print(message)

    config = config_from_args(args)
    session = new_session(config)

    try:
        if args.script_keys:
            keys = ScriptKeyExtractor(session, config).fetch()
            say(f"[+] {len(keys)} script keys from {config.bootstrap_url}")
            for key in keys:
                print(key)
            return 0

        say(f"[*] Looking for a key on {config.base_url}")
        key = get_key(session, config)
        if args.quiet:
            print(key)
        else:
            say(f"[+] API key: {key}")

        if args.check:
            result = check_key(key, session, username=args.username, config=config)
            if result.valid:
                say(f"[+] Key works (channel: {result.title})")
            else:
                say(f"[!] Key rejected (HTTP {result.status_code})")
                return 1
        return 0

    except KeyFinderError as e:
        print(f"[X] {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n[X] Interrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        # esprima errors from the bootstrap script end up here
        print(f"[X] Could not read the bootstrap script: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
