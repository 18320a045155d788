import asyncio
import sys

import httpx

from holdfast import HttpConnection, ServerUnavailableError


def response_str(response: httpx.Response) -> str:
    sep = '-------------------------'
    string = f'\n{sep}\n{response.request.method} {response.url}\n'
    string += f'Status: {response.status_code}\n'
    for key, value in response.headers.items():
        string += f'{key}: {value}\n'
    string += sep
    return string


async def main() -> int:

    if len(sys.argv) < 2:
        host = input('Enter a host to fetch from: ').strip()
    else:
        host = sys.argv[1].strip()

    path = sys.argv[2].strip() if len(sys.argv) > 2 else '/'

    exit_code = 1
    async with HttpConnection(user_agent='holdfast-demo/0.1') as conn:
        try:
            response = await conn.request(
                server=host,
                port=443,
                request=httpx.Request('GET', f'https://{host}{path}'),
            )
            print(response_str(response))
            exit_code = 0
        except ServerUnavailableError as exc:
            print(f'Gave up on {host}: {exc}')

    return exit_code

if __name__ == '__main__':
    sys.exit(
        asyncio.run(main())
    )
